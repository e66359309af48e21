import sys

from platbuild.cli import main

sys.exit(main())
