#!/usr/bin/env python
#
#     utils.py: utility functions shared across the pipeline
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# utils.py
#
#########################################################################

"""
Utility functions shared by the LCA pipeline commands.

Functions:

- parse_version: split a version string into a tuple
- compare_versions: compare two version strings
- version_test: test the relation between two versions
- confirm: ask the user for a yes/no confirmation
- str_to_bool: convert a 'true'/'false' flag value
- strip_trailing_slash: remove a trailing slash from a path
- timestamp: date and time string for output file names
- date_string: current date in the format used by 'date'
- check_resources: compare requested to available resources
"""

#######################################################################
# Imports
#######################################################################

import re
import time
import logging
import psutil
from .exceptions import ParameterError

# Module specific logger
logger = logging.getLogger(__name__)

#######################################################################
# Constants
#######################################################################

# Responses accepted as a positive confirmation
CONFIRM_PATTERN = re.compile(r"^([yY][eE][sS]|[yY])$")

#######################################################################
# Functions
#######################################################################

def parse_version(s):
    """
    Split a version string into a tuple for comparison

    Given a version string of the form e.g. "X.Y.Z",
    return a tuple of the components e.g. (X,Y,Z)

    Where possible components will be coverted to
    integers; empty components (e.g. from "1..0") are
    treated as zero.

    If the version string is empty then the version
    number will be set to an arbitrary negative
    integer.

    Arguments:
      s (str): version string

    Returns:
      Tuple: tuple of the version string
    """
    if s == "":
        # Essentially versionless; set to an
        # arbitrarily small integer
        s = "-99999"
    items = []
    for i in str(s).split('.'):
        if i == "":
            i = 0
        try:
            i = int(i)
        except ValueError:
            pass
        items.append(i)
    return tuple(items)

def compare_versions(v1,v2):
    """
    Compare two version strings

    Versions are compared field by field; missing trailing
    fields are treated as zero, so that "1" and "1.0.0" are
    equal, and leading zeroes are ignored (e.g. "1.01.1"
    equals "1.1.1").

    Arguments:
      v1 (str): first version string
      v2 (str): second version string

    Returns:
      String: one of '=' (versions are equal), '>' (v1
        is greater than v2) or '<' (v1 is less than v2).
    """
    if str(v1) == str(v2):
        return '='
    ver1 = list(parse_version(v1))
    ver2 = list(parse_version(v2))
    n = max(len(ver1),len(ver2))
    ver1.extend([0]*(n - len(ver1)))
    ver2.extend([0]*(n - len(ver2)))
    for i1,i2 in zip(ver1,ver2):
        if i1 == i2:
            continue
        try:
            if i1 > i2:
                return '>'
            return '<'
        except TypeError:
            # Mixed integer and string components
            if str(i1) > str(i2):
                return '>'
            return '<'
    return '='

def version_test(v1,v2,op):
    """
    Test whether a relation holds between two versions

    For example:

    >>> version_test("4.8.2","4.4",">")
    True

    Arguments:
      v1 (str): first version string
      v2 (str): second version string
      op (str): one of '=', '>' or '<'

    Returns:
      Boolean: True if 'v1 op v2' holds, False if not.
    """
    if op not in ('=','>','<'):
        raise ValueError("'%s': unrecognised comparison operator" % op)
    return (compare_versions(v1,v2) == op)

def confirm(prompt="Are the parameters correct? Continue? [y/N] ",
            input_func=input):
    """
    Ask the user to confirm before continuing

    Arguments:
      prompt (str): text to display
      input_func (function): function used to get the
        response from the user (default: 'input')

    Returns:
      Boolean: True if the user responded with 'y' or
        'yes' (in any case), False otherwise.
    """
    try:
        response = input_func(prompt)
    except EOFError:
        # No input available
        return False
    return bool(CONFIRM_PATTERN.match(str(response).strip()))

def str_to_bool(flag,value):
    """
    Convert a 'true'/'false' flag argument to boolean

    Arguments:
      flag (str): name of the flag (e.g. '-u'), used
        in the error message
      value (str): value supplied for the flag (case
        is ignored)

    Returns:
      Boolean: True for 'true', False for 'false'.

    Raises:
      ParameterError: if the value is neither 'true'
        nor 'false'.
    """
    if isinstance(value,bool):
        return value
    if value is not None:
        if str(value).lower() == 'true':
            return True
        elif str(value).lower() == 'false':
            return False
    raise ParameterError("%s flag can only be set to 'true' or "
                         "'false'!" % flag)

def strip_trailing_slash(path):
    """
    Remove a trailing slash from a path (if present)
    """
    if len(path) > 1 and path.endswith('/'):
        return path.rstrip('/') or '/'
    return path

def timestamp():
    """
    Return current date and time as 'YYYYmmdd_HHMM'
    """
    return time.strftime("%Y%m%d_%H%M")

def date_string():
    """
    Return current date and time in the style of 'date'
    """
    return time.strftime("%a %b %d %H:%M:%S %Z %Y")

def check_resources(cores,memgb):
    """
    Compare requested cores and memory with local machine

    Issues warnings if the number of cores or amount of
    memory requested exceed what is available on the
    current system.

    Arguments:
      cores (int): number of cores requested
      memgb (int): memory requested in Gb

    Returns:
      Boolean: True if requests fit on the local system,
        False if not.
    """
    ok = True
    cpu_count = psutil.cpu_count()
    if cpu_count and int(cores) > cpu_count:
        logger.warning("%s cores requested but only %s available on "
                       "this machine" % (cores,cpu_count))
        ok = False
    total_mem = float(psutil.virtual_memory().total)/(1024.0**3)
    if float(memgb) > total_mem:
        logger.warning("%sGb memory requested but only %.1fGb available "
                       "on this machine" % (memgb,total_mem))
        ok = False
    return ok
