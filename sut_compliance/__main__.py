import sys

from sut_compliance.cli import main

if __name__ == "__main__":
    sys.exit(main())
