import sys

from s3_archive.cli import main

if __name__ == "__main__":
    sys.exit(main())
