from callset.cli import main

raise SystemExit(main())
