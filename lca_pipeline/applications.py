#!/usr/bin/env python
#
#     applications.py: command lines for external LCA pipeline tools
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# applications.py
#
#########################################################################

"""applications.py

Utility classes for generating command lines to run the external
programs that the Lung Cell Atlas pipeline depends on.

Static classes provide methods for building command lines in the
form of 'Command' instances:

- nextflow: the workflow engine which runs the pipeline itself
- cellranger: reference genome building and version checks
- conda: environment creation and introspection
- general: data transfer (curl, lftp)

For example, to create a Command object representing the command line
to download a file:

>>> curl = general.curl_download('https://example.org/data.tar.gz',
...                              'data.tar.gz')
>>> curl
curl https://example.org/data.tar.gz --output data.tar.gz
>>> curl.command_line
['curl', 'https://example.org/data.tar.gz', '--output', 'data.tar.gz']

The resulting command line can be executed directly via the
'run_subprocess' method of the Command object, e.g:

>>> curl.run_subprocess()

"""

#######################################################################
# Imports
#######################################################################

import shlex
import logging
from .command import Command

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#######################################################################
# Constants
#######################################################################

# Gene biotypes retained by 'cellranger mkgtf'
MKGTF_BIOTYPES = (
    'protein_coding',
    'lincRNA',
    'antisense',
    'IG_LV_gene',
    'IG_V_gene',
    'IG_V_pseudogene',
    'IG_D_gene',
    'IG_J_gene',
    'IG_J_pseudogene',
    'IG_C_gene',
    'IG_C_pseudogene',
    'TR_V_gene',
    'TR_V_pseudogene',
    'TR_D_gene',
    'TR_J_gene',
    'TR_J_pseudogene',
    'TR_C_gene',
)

#######################################################################
# Classes
#######################################################################

class nextflow:
    """Nextflow workflow engine

    Provides static methods to create Command instances for
    running the LCA nextflow pipeline:

    run

    """

    @staticmethod
    def run(pipeline,profile,config,outdir,samplesheet,condaenvpath,
            localcores,localmemgb,samtools_thr,queue=None,
            cluster_options=None,background=True):
        """Generate Command instance for 'nextflow run'

        Arguments:
          pipeline: path to the nextflow script (.nf file)
          profile: execution profile ('local' or 'cluster')
          config: path to the nextflow config file
          outdir: output directory for the pipeline (a trailing
            slash is added if not present)
          samplesheet: path to the file with the sample table
          condaenvpath: path to the conda environment
          localcores: number of cores for cellranger
          localmemgb: memory (in Gb) for cellranger
          samtools_thr: number of threads for samtools
          queue: optional, name of cluster queue/partition
          cluster_options: optional, additional options passed
            to the cluster on job submission
          background: if True (the default) then run nextflow
            with '-bg'

        Returns:
          Command object.

        """
        if not str(outdir).endswith('/'):
            outdir = "%s/" % outdir
        nf_cmd = Command('nextflow','run',pipeline,
                         '-profile',profile,
                         '-c',config,
                         '--outdir',outdir,
                         '--samplesheet',samplesheet,
                         '--condaenvpath',condaenvpath,
                         '--localcores',localcores,
                         '--localmemGB',localmemgb,
                         '--samtools_thr',samtools_thr)
        if background:
            nf_cmd.add_args('-bg')
        if queue:
            nf_cmd.add_args('--queue',queue)
        if cluster_options:
            nf_cmd.add_args('--clusterOpt',cluster_options)
        return nf_cmd

class cellranger:
    """10x Genomics cellranger

    Provides static methods to create Command instances for
    cellranger subcommands:

    sitecheck
    mkgtf
    mkref

    """

    @staticmethod
    def sitecheck(cellranger_exe='cellranger'):
        """Generate Command instance for 'cellranger sitecheck'

        Returns:
          Command object.

        """
        return Command(cellranger_exe,'sitecheck')

    @staticmethod
    def mkgtf(gtf_in,gtf_out,biotypes=MKGTF_BIOTYPES,
              cellranger_exe='cellranger'):
        """Generate Command instance for 'cellranger mkgtf'

        Arguments:
          gtf_in: input GTF annotation file
          gtf_out: filtered GTF output file
          biotypes: list of gene biotypes to retain

        Returns:
          Command object.

        """
        mkgtf_cmd = Command(cellranger_exe,'mkgtf',gtf_in,gtf_out)
        for biotype in biotypes:
            mkgtf_cmd.add_args("--attribute=gene_biotype:%s" % biotype)
        return mkgtf_cmd

    @staticmethod
    def mkref(genomes,memgb,nthreads,ref_version=None,
              cellranger_exe='cellranger'):
        """Generate Command instance for 'cellranger mkref'

        Arguments:
          genomes: list of tuples (name,fasta,genes) for each
            genome to include in the reference
          memgb: memory (in Gb) to use
          nthreads: number of threads to use
          ref_version: optional, version string to write into
            the reference

        Returns:
          Command object.

        """
        mkref_cmd = Command(cellranger_exe,'mkref')
        for name,fasta,genes in genomes:
            mkref_cmd.add_args("--genome=%s" % name,
                               "--fasta=%s" % fasta,
                               "--genes=%s" % genes)
        mkref_cmd.add_args('--memgb',memgb,
                           '--nthreads',nthreads)
        if ref_version:
            mkref_cmd.add_args("--ref-version=%s" % ref_version)
        return mkref_cmd

class conda:
    """Conda package and environment manager

    Provides static methods to create Command instances for:

    create
    info_base

    """

    @staticmethod
    def create(conda_exe,prefix,packages,channels=None):
        """Generate Command instance for 'conda create'

        Arguments:
          conda_exe: path to the conda executable
          prefix: full path to the new environment
          packages: list of package specifications
          channels: optional, list of channels (in priority
            order)

        Returns:
          Command object.

        """
        create_cmd = Command(conda_exe,'create','--prefix',prefix)
        if channels:
            for channel in channels:
                create_cmd.add_args('-c',channel)
        create_cmd.add_args('-y')
        create_cmd.add_args(*packages)
        return create_cmd

    @staticmethod
    def info_base(conda_exe='conda'):
        """Generate Command instance for 'conda info --base'

        Returns:
          Command object.

        """
        return Command(conda_exe,'info','--base')

class general:
    """General command line applications (e.g. curl, lftp)

    Provides static methods to create Command instances for a
    class of 'general' command line applications:

    curl_download
    curl_upload
    lftp_put

    """

    @staticmethod
    def curl_download(url,output,user=None,insecure=False,
                      fail_on_error=False):
        """Generate Command instance for 'curl' to fetch a file

        Arguments:
          url: URL to download
          output: local file to write to
          user: optional, 'user:password' credentials
          insecure: if True then skip TLS certificate
            verification ('-k')
          fail_on_error: if True then return non-zero status
            for HTTP errors ('--fail')

        Returns:
          Command object.

        """
        curl_cmd = Command('curl')
        if user is not None:
            curl_cmd.add_args('--user',user)
        if fail_on_error:
            curl_cmd.add_args('--fail')
        curl_cmd.add_args(url,'--output',output)
        if insecure:
            curl_cmd.add_args('-k')
        return curl_cmd

    @staticmethod
    def curl_upload(filen,url,user=None,headers=None):
        """Generate Command instance for 'curl' to upload a file

        Creates a Command instance to run 'curl -T FILE URL',
        i.e. an HTTP PUT of the file contents.

        Arguments:
          filen: local file to upload
          url: destination URL
          user: optional, 'user:password' credentials
          headers: optional, list of additional HTTP headers

        Returns:
          Command object.

        """
        curl_cmd = Command('curl','--fail','-T',filen)
        if user is not None:
            curl_cmd.add_args('-u',user)
        if headers:
            for header in headers:
                curl_cmd.add_args('-H',header)
        curl_cmd.add_args(url)
        return curl_cmd

    @staticmethod
    def lftp_put(filen,server,remote_dir=None,user=None,port=None,
                 password=None,protocol='sftp'):
        """Generate Command instance for 'lftp' to upload a file

        Arguments:
          filen: local file to upload
          server: name of the remote server
          remote_dir: optional, directory on the server to
            upload into
          user: optional, name of the remote user
          port: optional, port to connect to
          password: optional, password for the remote user (if
            not set then an empty password is passed, which stops
            lftp prompting for one so that key-based authentication
            is used)
          protocol: protocol to use (default: 'sftp')

        Returns:
          Command object.

        """
        url = "%s://%s" % (protocol,server)
        if port:
            url = "%s:%s" % (url,port)
        lftp_cmd = Command('lftp')
        if user:
            lftp_cmd.add_args('-u',"%s,%s" % (user,
                                              password if password else ''))
        script = []
        if remote_dir:
            script.append("cd %s" % shlex.quote(remote_dir))
        script.append("put %s" % shlex.quote(filen))
        script.append("bye")
        lftp_cmd.add_args('-e',"; ".join(script),url)
        return lftp_cmd
