#!/usr/bin/env python
#
#     pipelinelog.py: append-only log files for pipeline workflows
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# pipelinelog.py
#
#########################################################################

"""
Provides the ``PipelineLog`` class, which manages the log file
written by each of the pipeline workflows.

Messages written via ``echo`` are printed to stdout and also
appended to the log file (i.e. the equivalent of piping output
through ``tee -a``). Warnings and errors reported via the Python
``logging`` module are also copied into the log file while it is
open.

Example usage:

>>> with PipelineLog("LOG_LCA_pipeline_run.log") as log:
...     log.echo("PARAMETERS:")
...     nf_cmd.run_subprocess(tee=log)
"""

#######################################################################
# Imports
#######################################################################

import os
import sys
import logging
from .exceptions import LCAPipelineError
from .exceptions import NotConfirmedError
from .utils import date_string

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#######################################################################
# Classes
#######################################################################

class PipelineLog:
    """
    Create-once log file with output duplication

    Arguments:
      log_file (str): path to the log file to create
      force (bool): if True then an existing log file will
        be removed (with a warning); otherwise an existing
        log file is an error
      echo_path (bool): if True (the default) then report
        the location of the new log file on stdout
    """
    def __init__(self,log_file,force=False,echo_path=True):
        self._log_file = os.path.abspath(log_file)
        if os.path.exists(self._log_file):
            if not force:
                raise LCAPipelineError("ERROR: LOG file %s already exists. "
                                       "please remove." % self._log_file)
            logger.warning("%s already exists but is removed, since "
                           "force is used." % self._log_file)
            os.remove(self._log_file)
        # Create the log file and add the date
        self._fp = open(self._log_file,'at')
        self._fp.write("%s\n" % date_string())
        self._fp.flush()
        if echo_path:
            print("Creating log file in %s" % self._log_file)
        # Copy warnings and errors from the logging system
        self._handler = logging.FileHandler(self._log_file)
        self._handler.setLevel(logging.WARNING)
        self._handler.setFormatter(
            logging.Formatter("%(levelname)s: %(message)s"))
        logging.getLogger().addHandler(self._handler)

    @property
    def path(self):
        """
        Path to the log file
        """
        return self._log_file

    @property
    def closed(self):
        return (self._fp is None)

    def echo(self,msg=""):
        """
        Print a message and append it to the log file
        """
        print(msg)
        sys.stdout.flush()
        self.write("%s\n" % msg)

    def write(self,s):
        """
        Append a string to the log file only

        The string is written as-is (i.e. no newline is
        added) so that this method can be used as the
        target for command output.
        """
        if self._fp is None:
            raise LCAPipelineError("%s: log file is closed" %
                                   self._log_file)
        self._fp.write(s)
        self._fp.flush()

    def append_file(self,filen,remove=False):
        """
        Append the contents of another file to the log

        Arguments:
          filen (str): path to the file to append
          remove (bool): if True then delete the file
            after it has been appended
        """
        with open(filen,'rt') as fp:
            for line in fp:
                self.write(line)
        if remove:
            os.remove(filen)

    def close(self):
        """
        Close the log file
        """
        if self._fp is None:
            return
        logging.getLogger().removeHandler(self._handler)
        self._handler.close()
        self._fp.close()
        self._fp = None

    def __enter__(self):
        return self

    def __exit__(self,exc_type,exc_value,traceback):
        if exc_type is not None and not self.closed and \
           issubclass(exc_type,LCAPipelineError) and \
           not issubclass(exc_type,NotConfirmedError):
            # Record the reason for stopping
            self.write("%s Exiting.\n" % exc_value)
        self.close()
