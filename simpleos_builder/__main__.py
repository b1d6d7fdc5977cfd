import sys

from simpleos_builder.main import main


sys.exit(main())
