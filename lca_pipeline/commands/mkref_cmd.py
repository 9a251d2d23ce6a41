#!/usr/bin/env python
#
#     mkref_cmd.py: implement the LCA pipeline 'mkref' command
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
#########################################################################

#######################################################################
# Imports
#######################################################################

import os
import logging
from ..refgenome import ENSEMBL_FTP_URL
from ..refgenome import ReferenceGenomeBuilder
from ..utils import confirm
from ..utils import str_to_bool

# Module specific logger
logger = logging.getLogger(__name__)

#######################################################################
# Command functions
#######################################################################

def mkref(ensembl_release="99",genome="GRCh38",species="homo_sapiens",
          genome2=None,species2=None,cellranger_version="3.1.0",
          nthreads=20,memgb=48,custom_gtf=None,custom_fasta=None,
          custom_name="custom",force="false",output_dir=None,
          ensembl_base_url=ENSEMBL_FTP_URL,assume_yes=False,
          input_func=input):
    """
    Create a cellranger reference from an Ensembl release

    The reference is built in the output directory using the
    'cellranger' found on the PATH.

    Arguments:
      ensembl_release (str): Ensembl release
      genome (str): genome release (e.g. 'GRCh38')
      species (str): species (e.g. 'homo_sapiens')
      genome2 (str): optional, genome release for a second
        species
      species2 (str): optional, second species
      cellranger_version (str): expected cellranger version
      nthreads (int): number of threads for 'mkref'
      memgb (int): memory in Gb for 'mkref'
      custom_gtf (str): optional, custom GTF to add to the
        first genome
      custom_fasta (str): optional, custom FASTA to add to
        the first genome
      custom_name (str): name for the custom additions
      force (str): 'true' or 'false'; if true then remove
        existing outputs and skip the parameter check
      output_dir (str): directory to build the reference in
        (default: current directory)
      ensembl_base_url (str): base URL for Ensembl downloads
      assume_yes (bool): if True then don't prompt the user
        to confirm the parameters
      input_func (function): function to get the response to
        the confirmation prompt

    Returns:
      Integer: 0 on success, 1 on failure.
    """
    force = str_to_bool('-u',force)
    if output_dir is None:
        output_dir = os.getcwd()
    builder = ReferenceGenomeBuilder(ensembl_release=ensembl_release,
                                     genome=genome,
                                     species=species,
                                     genome2=genome2,
                                     species2=species2,
                                     cellranger_version=cellranger_version,
                                     nthreads=nthreads,
                                     memgb=memgb,
                                     custom_gtf=custom_gtf,
                                     custom_fasta=custom_fasta,
                                     custom_name=custom_name,
                                     force=force,
                                     ensembl_base_url=ensembl_base_url)
    if assume_yes:
        confirm_func = lambda: True
    else:
        confirm_func = lambda: confirm(input_func=input_func)
    return builder.build(output_dir,confirm_func=confirm_func)
