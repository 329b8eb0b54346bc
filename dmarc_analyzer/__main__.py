import sys

from dmarc_analyzer.app import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
