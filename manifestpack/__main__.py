import sys

from manifestpack.cli import main

raise SystemExit(main(sys.argv[1:]))
