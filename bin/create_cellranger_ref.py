#!/usr/bin/env python
#
#     create_cellranger_ref.py: build cellranger reference from Ensembl
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
import sys
from lca_pipeline.cli.lca_pipeline import main
if __name__ == "__main__":
     sys.exit(main(['mkref'] + sys.argv[1:]))
