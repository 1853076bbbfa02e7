"""Allow ``python -m reftest``."""
from reftest.cli.main import main

raise SystemExit(main())
