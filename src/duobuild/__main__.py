from duobuild.cli import main

raise SystemExit(main())
