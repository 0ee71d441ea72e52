from __future__ import annotations

from schoolsync.entrypoints.cli import main

raise SystemExit(main())
