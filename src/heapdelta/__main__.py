import sys

from heapdelta._cli import main

sys.exit(main())
