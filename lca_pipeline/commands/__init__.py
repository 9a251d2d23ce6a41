#!/usr/bin/env python
#
#     commands/__init__.py: core functions for LCA pipeline commands
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
#######################################################################
# Imports
#######################################################################

from .setup_cmd import setup
from .run_cmd import run
from .testrun_cmd import testrun
from .mkref_cmd import mkref
