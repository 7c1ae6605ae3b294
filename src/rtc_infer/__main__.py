from rtc_infer.cli import main

raise SystemExit(main())
