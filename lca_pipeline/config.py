#!/usr/bin/env python
#
#     config: utilities for managing lca_pipeline config files
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# config.py
#
#########################################################################

"""
Classes to support reading the 'ini'-style settings files used
by the 'lca_pipeline' library.

The following classes are provided:

- Config: ConfigParser which distinguishes unset, empty and
  missing values
- NullValue: represents a null (unset) configuration parameter
"""

from configparser import ConfigParser
from configparser import NoOptionError
from configparser import NoSectionError

#######################################################################
# Classes
#######################################################################

class Config(ConfigParser):
    """
    ConfigParser for LCA pipeline settings files

    Option names are case sensitive. The 'get' method
    takes an optional 'default' argument which is returned
    if the option is missing, empty or set to 'None':

    >>> c = Config()
    >>> c.read(conf_file)
    >>> c.get('setup','genome',default='GRCh38')

    Without a default, empty and 'None' values are
    returned as None, and missing options or sections
    as a 'NullValue' instance.
    """
    def __init__(self):
        ConfigParser.__init__(self)
        self.optionxform = str
        self.nullvalue = NullValue()

    def get(self,section,option,**kwargs):
        """
        Fetch value of option from config file

        Arguments:
          section (str): section name in config file
          option (str): name of option
          default (object): value to return if option is
            missing, empty or 'None'
          kwargs (mapping): additional keyword arguments
            to pass directly to 'get' method of superclass
        """
        use_default = ('default' in kwargs)
        default = kwargs.pop('default',None)
        try:
            value = ConfigParser.get(self,section,option,**kwargs)
        except (NoOptionError,NoSectionError):
            return default if use_default else self.nullvalue
        if value in ('None',''):
            return default
        return value

class NullValue:
    """
    Represents a null (i.e. unset) value for a config setting
    """
    def __bool__(self):
        return False

    def __eq__(self,x):
        # All NullValue instances are equivalent
        return isinstance(x,NullValue)

    def __hash__(self):
        return hash(NullValue)

    def __repr__(self):
        return "<NullValue>"
