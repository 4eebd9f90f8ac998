from qcp.cli import main


raise SystemExit(main())
