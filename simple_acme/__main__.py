"""simple-acme main entry point."""
import sys

from simple_acme import main

if __name__ == "__main__":
    sys.exit(main.main())
