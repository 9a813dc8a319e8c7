# main.py

import sys

from klepto_engine.cli import main

if __name__ == "__main__":
    sys.exit(main())
