from knight_tours.cli import main

raise SystemExit(main())
