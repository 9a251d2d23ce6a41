#!/usr/bin/env python
#
#     refgenome.py: build cellranger references from Ensembl
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# refgenome.py
#
#########################################################################

"""
Provides the ``ReferenceGenomeBuilder`` class, which creates a
reference package for ``cellranger`` from the genome FASTA and
GTF annotation files of an arbitrary Ensembl release.

The build follows the procedure recommended by 10x Genomics:

1. check that the expected version of cellranger is available
2. download the FASTA and GTF files from the Ensembl FTP site
   (verifying each against the Ensembl CHECKSUMS files)
3. optionally append a custom FASTA and GTF (e.g. a viral genome)
4. filter the annotation to the gene biotypes of interest using
   ``cellranger mkgtf``
5. build the reference using ``cellranger mkref``
6. write an MD5 checksum file for the reference contents

A second species can also be included (e.g. for mixed human/mouse
references).
"""

#######################################################################
# Imports
#######################################################################

import os
import re
import shutil
import logging
from .applications import cellranger
from .applications import general
from .checksums import bsd_sum
from .checksums import check_ensembl_checksum
from .checksums import write_md5_checksums
from .fileops import gunzip
from .pipelinelog import PipelineLog
from .utils import confirm
from .exceptions import ParameterError
from .exceptions import NotConfirmedError
from .exceptions import ChecksumError
from .exceptions import ExternalCommandError
from .exceptions import LCAPipelineError

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#######################################################################
# Constants
#######################################################################

REFGENOME_BUILDER_VERSION = "1.1"

ENSEMBL_FTP_URL = "ftp://ftp.ensembl.org/pub"

# Files in the reference which vary between builds
MD5_EXCLUDE = ('genes.pickle','reference.json','genomeParameters.txt',)

#######################################################################
# Classes
#######################################################################

class ReferenceGenomeBuilder:
    """
    Build a cellranger reference from Ensembl data

    Example usage:

    >>> builder = ReferenceGenomeBuilder(ensembl_release="99",
    ...                                  genome="GRCh38",
    ...                                  species="homo_sapiens")
    >>> builder.check_inputs('/data/refgenomes')
    >>> builder.build('/data/refgenomes')

    Arguments:
      ensembl_release (str): Ensembl release (e.g. '99')
      genome (str): genome release without the patch id
        (e.g. 'GRCh38')
      species (str): species name as used by Ensembl
        (e.g. 'homo_sapiens')
      cellranger_version (str): version of cellranger that
        must be available
      nthreads (int): number of threads for 'mkref'
      memgb (int): memory in Gb for 'mkref'
      genome2 (str): optional, genome release for a second
        species
      species2 (str): optional, second species name
      custom_gtf (str): optional, custom GTF file to add to
        the annotation for the first genome
      custom_fasta (str): optional, custom FASTA file to add
        to the first genome
      custom_name (str): name appended to the genome name
        when custom files are added (default: 'custom')
      force (bool): if True then remove an existing log file
        and output folder, and skip the parameter check by
        the user
      download (bool): if False then use previously
        downloaded Ensembl files from the output directory
        rather than fetching them (default: True)
      ensembl_base_url (str): base URL for Ensembl downloads
      conda (CondaWrapper): optional, if supplied together
        with 'conda_env' then cellranger is run inside that
        environment
      conda_env (str): optional, path to the environment
        with cellranger installed
    """
    def __init__(self,ensembl_release="99",genome="GRCh38",
                 species="homo_sapiens",cellranger_version="3.1.0",
                 nthreads=20,memgb=48,genome2=None,species2=None,
                 custom_gtf=None,custom_fasta=None,custom_name="custom",
                 force=False,download=True,
                 ensembl_base_url=ENSEMBL_FTP_URL,
                 conda=None,conda_env=None):
        self.ensembl_release = str(ensembl_release)
        self.genome = genome
        self.species = species
        self.cellranger_version = str(cellranger_version)
        self.nthreads = nthreads
        self.memgb = memgb
        self.genome2 = genome2 if genome2 else None
        self.species2 = species2 if species2 else None
        if custom_gtf:
            custom_gtf = os.path.abspath(custom_gtf)
        if custom_fasta:
            custom_fasta = os.path.abspath(custom_fasta)
        self.custom_gtf = custom_gtf
        self.custom_fasta = custom_fasta
        self.custom_name = custom_name
        self.force = bool(force)
        self.download = bool(download)
        self.ensembl_base_url = ensembl_base_url.rstrip('/')
        self._conda = conda
        self._conda_env = conda_env
        if self.genome2 and not self.species2:
            raise ParameterError("A species must be supplied for the "
                                 "second genome")

    @property
    def has_custom_files(self):
        """
        Check whether a custom FASTA and GTF will be added
        """
        return bool(self.custom_gtf and self.custom_fasta)

    @property
    def _base_name(self):
        # Internal: release and version part of the names
        name = "ensrel%s_cr%s" % (self.ensembl_release,
                                  self.cellranger_version)
        if self.has_custom_files:
            name = "%s_%s" % (name,self.custom_name)
        return name

    @property
    def genome_name(self):
        """
        Name of the (first) genome in the reference
        """
        if self.genome2:
            return "%s_%s" % (self.species,self.genome)
        return "%s_%s_%s" % (self.species,self.genome,self._base_name)

    @property
    def genome2_name(self):
        """
        Name of the second genome (or None)
        """
        if not self.genome2:
            return None
        return "%s_%s_%s" % (self.species2,self.genome2,self._base_name)

    @property
    def output_folder(self):
        """
        Name of the reference folder created by 'mkref'
        """
        if self.genome2:
            return "%s_and_%s" % (self.genome_name,self.genome2_name)
        return self.genome_name

    @property
    def log_file(self):
        """
        Name of the log file for the build
        """
        if self.genome2:
            return "%s_%s_%s_%s_%s.log" % (self.species,
                                           self.genome,
                                           self.species2,
                                           self.genome2,
                                           self._base_name)
        return "%s.log" % self.genome_name

    @property
    def md5_file(self):
        """
        Name of the checksum file for the reference
        """
        return "%s.md5" % self.output_folder

    def fasta_name(self,species,genome):
        """
        Return name of the Ensembl primary assembly FASTA file
        """
        return "%s.%s.dna.primary_assembly.fa.gz" % (species.capitalize(),
                                                     genome)

    def gtf_name(self,species,genome):
        """
        Return name of the Ensembl GTF annotation file
        """
        return "%s.%s.%s.gtf.gz" % (species.capitalize(),
                                    genome,
                                    self.ensembl_release)

    def fasta_url(self,species,genome):
        """
        Return URL for the Ensembl FASTA file
        """
        return "%s/release-%s/fasta/%s/dna/%s" % \
            (self.ensembl_base_url,
             self.ensembl_release,
             species,
             self.fasta_name(species,genome))

    def fasta_checksums_url(self,species):
        """
        Return URL for the CHECKSUMS file for FASTA files
        """
        return "%s/release-%s/fasta/%s/dna/CHECKSUMS" % \
            (self.ensembl_base_url,
             self.ensembl_release,
             species)

    def gtf_url(self,species,genome):
        """
        Return URL for the Ensembl GTF file
        """
        return "%s/release-%s/gtf/%s/%s" % \
            (self.ensembl_base_url,
             self.ensembl_release,
             species,
             self.gtf_name(species,genome))

    def gtf_checksums_url(self,species):
        """
        Return URL for the CHECKSUMS file for GTF files
        """
        return "%s/release-%s/gtf/%s/CHECKSUMS" % \
            (self.ensembl_base_url,
             self.ensembl_release,
             species)

    def check_inputs(self,output_dir=None):
        """
        Check the inputs before starting a build

        Custom files must exist if supplied; an existing
        log file or output folder is an error unless 'force'
        is set (in which case the output folder is removed).

        Arguments:
          output_dir (str): directory that the build will
            run in (default: current directory)
        """
        if output_dir is None:
            output_dir = os.getcwd()
        if bool(self.custom_gtf) != bool(self.custom_fasta):
            raise ParameterError("Both a custom GTF and a custom FASTA "
                                 "file must be supplied")
        for f in (self.custom_gtf,self.custom_fasta):
            if f and not os.path.isfile(f):
                raise ParameterError("File %s not found!" % f)
        log_file = os.path.join(output_dir,self.log_file)
        if os.path.exists(log_file) and not self.force:
            raise LCAPipelineError("ERROR: LOG file %s already exists. "
                                   "please remove." % self.log_file)
        out_folder = os.path.join(output_dir,self.output_folder)
        if os.path.isdir(out_folder):
            if not self.force:
                raise LCAPipelineError("ERROR: Output directory %s "
                                       "already exists. please remove." %
                                       self.output_folder)
            logger.warning("Output directory %s exists but is removed, "
                           "since force is used." % self.output_folder)
            shutil.rmtree(out_folder)

    def report_params(self,log):
        """
        Write the build parameters to the log
        """
        log.echo("Version: %s" % REFGENOME_BUILDER_VERSION)
        log.echo("Logfile: %s" % self.log_file)
        log.echo("Params:")
        log.echo("Expected cellranger version: %s, Ensembl release: %s, "
                 "Genome release: %s, Species: %s" %
                 (self.cellranger_version,
                  self.ensembl_release,
                  self.genome,
                  self.species))
        log.echo("Genome2 release: %s, Species2: %s" %
                 (self.genome2 or '',self.species2 or ''))
        log.echo("Custgtf: %s, Custom fasta: %s, Custom name: %s" %
                 (self.custom_gtf or '',
                  self.custom_fasta or '',
                  self.custom_name))
        log.echo("Genome1 name: %s" % self.genome_name)
        log.echo("Genome2 name: %s" % (self.genome2_name or 'NA'))
        log.echo("Output folder name: %s" % self.output_folder)
        log.echo("nthreads: %s, memgb: %s" % (self.nthreads,self.memgb))

    def build(self,output_dir=None,confirm_func=confirm):
        """
        Build the reference

        Arguments:
          output_dir (str): directory to run the build in
            (default: current directory); the log file and
            reference folder are created here
          confirm_func (function): function which asks the
            user to confirm the parameters (skipped when
            'force' is set)

        Returns:
          Integer: 0 on success, 1 if 'mkgtf' or 'mkref'
            reported an error.
        """
        if output_dir is None:
            output_dir = os.getcwd()
        output_dir = os.path.abspath(output_dir)
        self.check_inputs(output_dir)
        with PipelineLog(os.path.join(output_dir,self.log_file),
                         force=self.force) as log:
            self.report_params(log)
            if not self.force:
                if not confirm_func():
                    log.echo("Parameters not confirmed, exit.")
                    raise NotConfirmedError("Parameters not confirmed.")
                log.echo("Parameters confirmed.")
            else:
                print("Parameter checking is skipped, since force is used.")
            return self._build(output_dir,log)

    def _build(self,output_dir,log):
        # Internal: perform the build steps
        status = 0
        # Check cellranger version
        crversion = self.check_cellranger_version(output_dir)
        if crversion != self.cellranger_version:
            msg = "ERROR: Expected cell ranger version is %s but current " \
                  "version is %s. Maybe different version is installed " \
                  "or correct environment is not activated." % \
                  (self.cellranger_version,crversion)
            log.echo(msg)
            raise LCAPipelineError(msg)
        log.echo("Expected cell ranger version %s found." % crversion)
        # Fetch the genome(s) and annotation(s)
        genomes = [(self.species,self.genome,"genome","annotation")]
        if self.genome2:
            genomes.append((self.species2,self.genome2,
                            "genome2","annotation2"))
        for species,genome,fasta_base,gtf_base in genomes:
            self.fetch_ensembl_file(self.fasta_url(species,genome),
                                    self.fasta_checksums_url(species),
                                    "%s.fa.gz" % fasta_base,
                                    "CHECKSUMS_FASTA",
                                    output_dir,
                                    log)
            if fasta_base == "genome" and self.has_custom_files:
                log.echo("Adding custom fasta file %s to genome.fa" %
                         self.custom_fasta)
                append_file(self.custom_fasta,
                            os.path.join(output_dir,"genome.fa"))
        for species,genome,fasta_base,gtf_base in genomes:
            self.fetch_ensembl_file(self.gtf_url(species,genome),
                                    self.gtf_checksums_url(species),
                                    "%s.gtf.gz" % gtf_base,
                                    "CHECKSUMS_GTF",
                                    output_dir,
                                    log)
            if gtf_base == "annotation" and self.has_custom_files:
                log.echo("Adding custom gtf file %s to annotation.gtf" %
                         self.custom_gtf)
                append_file(self.custom_gtf,
                            os.path.join(output_dir,"annotation.gtf"))
        # Filter the annotation(s)
        log.echo("Commands:")
        for species,genome,fasta_base,gtf_base in genomes:
            mkgtf = cellranger.mkgtf("%s.gtf" % gtf_base,
                                     "%s.filtered.gtf" % gtf_base)
            log.echo(str(mkgtf))
            if self._run(mkgtf,output_dir,log_file=log.path) != 0:
                log.echo("Error: There was an error running cellranger "
                         "mkgtf")
                status = 1
        # Build the reference
        mkref_genomes = [(self.genome_name,"genome.fa",
                          "annotation.filtered.gtf")]
        if self.genome2:
            mkref_genomes.append((self.genome2_name,"genome2.fa",
                                  "annotation2.filtered.gtf"))
        mkref = cellranger.mkref(mkref_genomes,
                                 memgb=self.memgb,
                                 nthreads=self.nthreads,
                                 ref_version=crversion)
        log.echo(str(mkref))
        if self._run(mkref,output_dir,log_file=log.path) != 0:
            log.echo("Error: There was an error running cellranger mkref")
            status = 1
        # Clean up intermediate files
        intermediates = ["sitecheck.txt","CHECKSUMS_GTF","CHECKSUMS_FASTA"]
        for species,genome,fasta_base,gtf_base in genomes:
            intermediates.extend(["%s.gtf" % gtf_base,
                                  "%s.filtered.gtf" % gtf_base,
                                  "%s.fa" % fasta_base])
        for f in intermediates:
            f = os.path.join(output_dir,f)
            if os.path.exists(f):
                os.remove(f)
        # Copy custom files into the reference
        out_folder = os.path.join(output_dir,self.output_folder)
        if self.has_custom_files:
            if os.path.isdir(out_folder):
                for f in (self.custom_fasta,self.custom_gtf):
                    shutil.copy(f,out_folder)
                log.echo("Copied %s %s to %s" % (self.custom_fasta,
                                                  self.custom_gtf,
                                                  self.output_folder))
            else:
                logger.warning("%s: reference folder not found, custom "
                               "files not copied" % self.output_folder)
        # Checksums for the reference contents
        if os.path.isdir(out_folder):
            write_md5_checksums(out_folder,
                                os.path.join(output_dir,self.md5_file),
                                exclude=MD5_EXCLUDE)
            log.echo("Created %s" % self.md5_file)
        else:
            log.echo("Error: reference folder %s was not created" %
                     self.output_folder)
            status = 1
        # Append the mkref log
        mkref_log = os.path.join(output_dir,"Log.out")
        if os.path.exists(mkref_log):
            log.append_file(mkref_log,remove=True)
        log.echo("Done.")
        return status

    def check_cellranger_version(self,output_dir):
        """
        Return the version reported by 'cellranger sitecheck'

        The version is taken from the first value in
        parentheses in the first two lines of the output
        (e.g. 'cellranger sitecheck (3.1.0)').

        Returns:
          String: the cellranger version (or None if it
            couldn't be determined).
        """
        sitecheck_file = os.path.join(output_dir,"sitecheck.txt")
        if os.path.exists(sitecheck_file):
            os.remove(sitecheck_file)
        self._run(cellranger.sitecheck(),output_dir,log_file=sitecheck_file)
        try:
            with open(sitecheck_file,'rt') as fp:
                head = [fp.readline() for i in range(2)]
        except IOError:
            return None
        m = re.search(r"\(([^)]+)\)",''.join(head))
        if m:
            return m.group(1)
        return None

    def fetch_ensembl_file(self,url,checksums_url,filen,checksums_file,
                           output_dir,log):
        """
        Download and verify a file from Ensembl

        The file is downloaded along with the appropriate
        CHECKSUMS file, verified, and then decompressed.

        Arguments:
          url (str): URL of the (gzipped) file to fetch
          checksums_url (str): URL of the CHECKSUMS file
          filen (str): local name for the download
          checksums_file (str): local name for the CHECKSUMS
            file
          output_dir (str): directory to download into
          log (PipelineLog): log for the build

        Returns:
          String: path to the decompressed file.
        """
        name = os.path.basename(url)
        if not self.download:
            return self.use_local_file(name,filen,output_dir,log)
        log.write("Downloading %s from: %s\n" % (filen,url))
        download(url,os.path.join(output_dir,filen))
        log.write("done.\n")
        download(checksums_url,os.path.join(output_dir,checksums_file))
        checksum,blocks = bsd_sum(os.path.join(output_dir,filen))
        if not check_ensembl_checksum(os.path.join(output_dir,filen),
                                      os.path.join(output_dir,
                                                   checksums_file),
                                      name):
            msg = "ERROR: Checksum %05d %d %s not found in %s file" % \
                  (checksum,blocks,name,checksums_file)
            log.echo(msg)
            raise ChecksumError(msg)
        log.echo("Checksum %05d %d %s found in %s file." %
                 (checksum,blocks,name,checksums_file))
        return gunzip(os.path.join(output_dir,filen))

    def use_local_file(self,name,filen,output_dir,log):
        """
        Use a previously downloaded Ensembl file

        The file must already be present in the output
        directory under its Ensembl name; a copy is made
        under the local name and decompressed.

        Returns:
          String: path to the decompressed file.
        """
        local_file = os.path.join(output_dir,name)
        if not os.path.isfile(local_file):
            raise ParameterError("File %s not found!" % local_file)
        log.echo("Using previously downloaded file %s" % name)
        shutil.copy(local_file,os.path.join(output_dir,filen))
        return gunzip(os.path.join(output_dir,filen))

    def _run(self,cmd,working_dir,log_file=None):
        # Internal: run a cellranger command (inside the conda
        # environment, if one was supplied) appending output
        # to a file
        if self._conda is not None and self._conda_env:
            return self._conda.run_in_env(cmd,
                                          self._conda_env,
                                          working_dir=working_dir,
                                          log=log_file)
        return cmd.run_subprocess(working_dir=working_dir,log=log_file)

#######################################################################
# Functions
#######################################################################

def download(url,filen):
    """
    Download a file using 'curl'

    Raises ExternalCommandError if the download fails.
    """
    curl = general.curl_download(url,filen,fail_on_error=True)
    status = curl.run_subprocess()
    if status != 0:
        raise ExternalCommandError("Failed to download %s" % url,
                                   cmdline=str(curl),
                                   status=status)
    return filen

def append_file(src,dest):
    """
    Append the contents of one file to another
    """
    with open(dest,'ab') as fp_out:
        with open(src,'rb') as fp_in:
            shutil.copyfileobj(fp_in,fp_out)
