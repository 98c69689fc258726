from __future__ import annotations

import logging
import sys

from finexa.entrypoints.cli import main


try:
    raise SystemExit(main())
except SystemExit:
    raise
except Exception:  # noqa: BLE001
    logging.getLogger("finexa").critical("Unhandled exception in entrypoint", exc_info=True)
    sys.stderr.write("Unexpected error. Check crash.log for details.\n")
    raise SystemExit(2)
