#!/usr/bin/env python
#
#     lca_pipeline.py: set up and run the Lung Cell Atlas pipeline
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
import sys
from lca_pipeline.cli.lca_pipeline import main
if __name__ == "__main__":
     sys.exit(main())
