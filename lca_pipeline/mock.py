#!/usr/bin/env python
#
#     mock.py: module providing mock executables and data for testing
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################

"""
Provides classes for making mock executables which mimic the external
software used by the LCA pipeline workflows, to be used in testing:

- MockConda: mock conda installation (``conda`` executable plus the
  ``conda.sh`` and ``activate`` scripts)
- MockNextflow: mock ``nextflow`` which produces minimal cellranger
  outputs for the samples in a sample sheet
- MockCellranger: mock ``cellranger`` supporting the ``sitecheck``,
  ``mkgtf`` and ``mkref`` commands
- MockCurl: mock ``curl`` which "downloads" files from a local
  directory and "uploads" files into another
- MockLftp: mock ``lftp`` which "uploads" files into a local directory

There are supporting standalone functions for mocking inputs:

- make_mock_pipeline_dir: create a mock LCA pipeline checkout
- make_mock_work_dir: create a mock working directory with test data
- make_mock_ensembl_release: create mock Ensembl FASTA and GTF files
  (with CHECKSUMS) for a mock download server
"""

#######################################################################
# Import modules that this module depends on
#######################################################################

import os
import sys
import gzip
import shlex
import shutil
import hashlib
import argparse
from .checksums import bsd_sum

#######################################################################
# Constants
#######################################################################

# Directory holding the lca_pipeline package (so that mock
# executables can import it)
_PACKAGE_PARENT_DIR = os.path.dirname(
    os.path.dirname(os.path.abspath(__file__)))

# Template for Python-based mock executables
_MOCK_EXE_TEMPLATE = """#!%s
import sys
sys.path.insert(0,"%s")
from lca_pipeline.mock import %s
sys.exit(%s(%s).main(sys.argv[1:]))
"""

# Outputs produced by mock nextflow for each sample (relative
# to the sample directory)
MOCK_CELLRANGER_SAMPLE_FILES = {
    "outs/filtered_feature_bc_matrix/barcodes.tsv":
    "AAACCTGAGAAACCAT-1\nAAACCTGAGAAACCGC-1\n",
    "outs/filtered_feature_bc_matrix/features.tsv":
    "ENSG00000243485\tMIR1302-2HG\tGene Expression\n",
    "outs/filtered_feature_bc_matrix/matrix.mtx":
    "%%MatrixMarket matrix coordinate integer general\n1 2 2\n1 1 1\n1 2 3\n",
    "outs/possorted_genome_bam.bam": "BAM\n",
    "outs/possorted_genome_bam.bam.bai": "BAI\n",
}

#######################################################################
# Classes
#######################################################################

class MockConda:
    """
    Create mock conda installation

    This class can be used to create a mock conda
    installation consisting of:

    - ``bin`` subdirectory with mock ``conda`` executable
      and 'activate' script
    - ``etc/profile.d/conda.sh`` script defining the
      ``conda`` shell function
    - ``envs`` subdirectory

    This can be used in place of an actual conda
    installation for testing purposes.

    To create a mock installation, use the 'create'
    static method, e.g.

    >>> MockConda.create("/tmp/conda")

    The resulting ``conda`` executable supports
    ``--version``, ``info --base`` and the ``create``
    command, and will generate mock outputs for all
    of these. Activating an environment adds its ``bin``
    subdirectory to the ``PATH``.

    The executable can be configured on creation to
    produce different error conditions when run:

    - the exit code can be set to an arbitrary value
      via the `exit_code` argument
    - the 'create' command can be forced to fail for
      all inputs by setting the `create_fails` argument
    - activation can be made to fail by setting the
      `activate_fails` argument
    - the reported version can be set via the `version`
      argument
    """

    @staticmethod
    def create(path,version="4.8.2",create_fails=False,
               activate_fails=False,exit_code=0):
        """
        Create a "mock" conda installation

        Arguments:
          path (str): path to the top-level directory
            for the mock conda installation (which
            must not exist, however the directory it
            will be created in must be present).
          version (str): version that mock conda
            will claim to be
          create_fails (bool): if True then the
            'create' subcommand of the mock
            conda executable will fail.
          activate_fails (bool): if True then
            activating an environment in the mock
            installation will return with value 1
            (i.e. an error code).
          exit_code (int): exit code that the
            mock executable should complete with
        """
        path = os.path.abspath(path)
        print("Building mock installation: %s" % path)
        # Don't clobber an existing installation
        assert(os.path.exists(path) is False)
        # Set up directories
        os.mkdir(path)
        for d in ("bin","envs","etc",os.path.join("etc","profile.d")):
            os.mkdir(os.path.join(path,d))
        # Create mock files
        bin_dir = os.path.join(path,"bin")
        conda_ = os.path.join(bin_dir,"conda")
        with open(conda_,'wt') as fp:
            fp.write("""#!/bin/bash
if [ "$1" == "--version" ] ; then
   echo "conda %s"
   exit 0
elif [ "$1" == "info" ] && [ "$2" == "--base" ] ; then
   echo %s
   exit 0
elif [ "$1" != "create" ] ; then
   echo "Unsupported command: $1"
   exit 1
fi
""" % (version,path))
            if create_fails:
                fp.write("""echo "!!!! Failed to create environment !!!!"
exit 1
""")
            else:
                fp.write("""YES=
PREFIX=
PACKAGES=
CHANNELS=
while [ ! -z "$2" ] ; do
  case "$2" in
    -n)
      shift
      PREFIX=$(dirname $(dirname $0))/envs/${2}
      ;;
    --prefix)
      shift
      PREFIX=$2
      ;;
    -y)
      YES=yes
      ;;
    -c)
      shift
      CHANNELS="$CHANNELS $2"
      ;;
    --override-channels)
      ;;
    *)
      PACKAGES="$PACKAGES $2"
      ;;
  esac
  shift
done
if [ -z "$YES" ] ; then
   echo "Need to supply -y option"
   exit 1
fi
if [ -z "$PREFIX" ] ; then
   echo "Need to supply either -n or --prefix"
   exit 1
fi
# Make directory for new environment
mkdir -p $PREFIX/bin $PREFIX/conda-meta
# Write package and channel lists
echo $PACKAGES >${PREFIX}/packages.txt
echo $CHANNELS >${PREFIX}/channels.txt
# Make an executable script for each package name
for pkg in $PACKAGES ; do
   name=$(echo $pkg | cut -f1 -d=)
   cat >${PREFIX}/bin/${name} <<EOF
#!/bin/bash
echo \\$1
exit %s
EOF
   chmod +x ${PREFIX}/bin/${name}
done
echo "Created environment $PREFIX"
exit %s
""" % (exit_code,exit_code))
        os.chmod(conda_,0o775)
        # Make mock 'conda.sh' script
        conda_sh = os.path.join(path,"etc","profile.d","conda.sh")
        with open(conda_sh,'wt') as fp:
            fp.write("""conda() {
    if [ "$1" == "activate" ] ; then
""")
            if activate_fails:
                fp.write("""        echo Activate failed
        return 1
""")
            fp.write("""        export CONDA_PREFIX=$2
        export PATH=${2}/bin:$PATH
    else
        %s "$@"
    fi
}
""" % conda_)
        # Make mock 'activate' script
        activate_ = os.path.join(bin_dir,"activate")
        with open(activate_,'wt') as fp:
            fp.write("""#!/bin/bash
export PATH=${1}/bin:$PATH
""")
            if activate_fails:
                fp.write("""echo Activate failed
return 1
""")
            os.chmod(activate_,0o755)
        with open(conda_,'rt') as fp:
            print("conda:")
            print("%s" % fp.read())
        return path

class MockNextflow:
    """
    Create mock nextflow executable

    This class can be used to create a mock nextflow
    executable, which in turn can be used in place of
    the actual program when testing the LCA pipeline
    workflows.

    To create a mock executable, use the 'create' static
    method, e.g.

    >>> MockNextflow.create("/tmp/bin/nextflow")

    The resulting executable supports the 'run' command
    with the options used by the LCA pipeline. For each
    sample in the sample sheet it will generate mock
    cellranger outputs in a ``cellranger`` subdirectory
    of the output directory. The arguments it was invoked
    with are also written to a ``nextflow_args.txt`` file
    in the current directory.

    The executable can be configured on creation to
    produce different error conditions when run:

    - the exit code can be set to an arbitrary value
      via the `exit_code` argument
    - the creation of the outputs can be suppressed
      via the `no_outputs` argument
    """

    @staticmethod
    def create(path,version=None,no_outputs=False,exit_code=0):
        """
        Create a "mock" nextflow executable

        Arguments:
          path (str): path to the new executable
            to create. The final executable must
            not exist, however the directory it
            will be created in must.
          version (str): explicit version string
          no_outputs (bool): if True then don't
            create outputs (default: False, do
            create outputs)
          exit_code (int): exit code that the
            mock executable should complete
            with
        """
        return _write_mock_exe(path,"MockNextflow",
                               "version=%s,no_outputs=%s,exit_code=%s" %
                               (("\"%s\"" % version
                                 if version is not None
                                 else None),
                                no_outputs,
                                exit_code))

    def __init__(self,version=None,no_outputs=False,exit_code=0):
        """
        Internal: configure the mock nextflow
        """
        if version is None:
            version = "19.10.0"
        self._version = str(version)
        self._no_outputs = no_outputs
        self._exit_code = exit_code

    def main(self,args):
        """
        Internal: provides mock nextflow functionality
        """
        # No args
        if not args:
            return self._exit_code
        # Version
        if args[0] in ("-version","-v"):
            print("nextflow version %s" % self._version)
            return self._exit_code
        # Record the arguments
        with open("nextflow_args.txt",'wt') as fp:
            fp.write("%s\n" % '\n'.join(args))
        # Deal with arguments
        p = argparse.ArgumentParser(prog="nextflow")
        sp = p.add_subparsers(dest="command")
        run = sp.add_parser("run")
        run.add_argument("pipeline")
        run.add_argument("-profile",action="store")
        run.add_argument("-c",action="store",dest="config")
        run.add_argument("-bg",action="store_true")
        run.add_argument("--outdir",action="store")
        run.add_argument("--samplesheet",action="store")
        run.add_argument("--condaenvpath",action="store")
        run.add_argument("--localcores",action="store")
        run.add_argument("--localmemGB",action="store")
        run.add_argument("--samtools_thr",action="store")
        run.add_argument("--queue",action="store")
        run.add_argument("--clusterOpt",action="store")
        args = p.parse_args(args)
        print("N E X T F L O W  ~  version %s" % self._version)
        if not os.path.exists(args.pipeline):
            print("Can't find a matching project/file for: %s" %
                  args.pipeline)
            return 1
        print("Launching `%s` [mock_run]" % args.pipeline)
        with open(".nextflow.log",'wt') as fp:
            fp.write("Mock nextflow run of %s\n" % args.pipeline)
        if self._no_outputs:
            return self._exit_code
        # Make outputs for each sample
        samples = read_mock_sample_sheet(args.samplesheet)
        for sample in samples:
            make_mock_cellranger_sample_outputs(
                os.path.join(args.outdir,"cellranger",sample))
            print("[cellranger] %s: completed" % sample)
        return self._exit_code

class MockCellranger:
    """
    Create mock cellranger executable

    This class can be used to create a mock cellranger
    executable, which in turn can be used in place of
    the actual program for testing purposes.

    To create a mock executable, use the 'create' static
    method, e.g.

    >>> MockCellranger.create("/tmp/bin/cellranger")

    The resulting executable supports the 'sitecheck',
    'mkgtf' and 'mkref' commands; 'mkref' creates a mock
    reference folder and 'Log.out' file in the current
    directory.

    The executable can be configured on creation to
    produce different error conditions when run:

    - the reported version can be set via the `version`
      argument
    - 'mkgtf' and 'mkref' can be made to fail via the
      `mkgtf_fails` and `mkref_fails` arguments
    """

    @staticmethod
    def create(path,version="3.1.0",mkgtf_fails=False,mkref_fails=False):
        """
        Create a "mock" cellranger executable

        Arguments:
          path (str): path to the new executable
            to create. The final executable must
            not exist, however the directory it
            will be created in must.
          version (str): version that the mock
            cellranger will report
          mkgtf_fails (bool): if True then 'mkgtf'
            returns an error
          mkref_fails (bool): if True then 'mkref'
            returns an error
        """
        return _write_mock_exe(path,"MockCellranger",
                               "version=\"%s\",mkgtf_fails=%s,"
                               "mkref_fails=%s" %
                               (version,mkgtf_fails,mkref_fails))

    def __init__(self,version="3.1.0",mkgtf_fails=False,mkref_fails=False):
        """
        Internal: configure the mock cellranger
        """
        self._version = str(version)
        self._mkgtf_fails = mkgtf_fails
        self._mkref_fails = mkref_fails

    def main(self,args):
        """
        Internal: provides mock cellranger functionality
        """
        if not args:
            print("cellranger (%s)" % self._version)
            return 0
        cmd = args[0]
        if cmd == "sitecheck":
            print("cellranger sitecheck (%s)" % self._version)
            print("Copyright (c) 2019 10x Genomics, Inc.  All rights "
                  "reserved.")
            print("-" * 72)
            return 0
        elif cmd == "mkgtf":
            print("cellranger mkgtf (%s)" % self._version)
            if self._mkgtf_fails:
                print("mkgtf failed")
                return 1
            gtf_in,gtf_out = args[1:3]
            biotypes = [a.split(':')[1] for a in args[3:]
                        if a.startswith("--attribute=gene_biotype:")]
            with open(gtf_in,'rt') as fp_in:
                with open(gtf_out,'wt') as fp_out:
                    for line in fp_in:
                        if line.startswith('#') or not biotypes or \
                           any(['gene_biotype "%s"' % b in line
                                for b in biotypes]):
                            fp_out.write(line)
            return 0
        elif cmd == "mkref":
            print("cellranger mkref (%s)" % self._version)
            p = argparse.ArgumentParser(prog="cellranger mkref")
            p.add_argument("--genome",action="append")
            p.add_argument("--fasta",action="append")
            p.add_argument("--genes",action="append")
            p.add_argument("--memgb",action="store")
            p.add_argument("--nthreads",action="store")
            p.add_argument("--ref-version",action="store")
            args = p.parse_args(args[1:])
            with open("Log.out",'wt') as fp:
                fp.write("Mock STAR genomeGenerate log\n")
            if self._mkref_fails:
                print("mkref failed")
                return 1
            for f in args.fasta + args.genes:
                if not os.path.exists(f):
                    print("%s: not found" % f)
                    return 1
            ref_dir = "_and_".join(args.genome)
            os.mkdir(ref_dir)
            for d in ("fasta","genes","star","pickle"):
                os.mkdir(os.path.join(ref_dir,d))
            shutil.copy(args.fasta[0],os.path.join(ref_dir,"fasta",
                                                   "genome.fa"))
            shutil.copy(args.genes[0],os.path.join(ref_dir,"genes",
                                                   "genes.gtf"))
            for f,content in (
                    (os.path.join("star","SA"),"SA\n"),
                    (os.path.join("star","genomeParameters.txt"),
                     "### mock\n"),
                    (os.path.join("pickle","genes.pickle"),"pickle\n"),
                    ("reference.json",
                     "{\"genomes\": %s, \"version\": \"%s\"}\n" %
                     (args.genome,args.ref_version)),):
                with open(os.path.join(ref_dir,f),'wt') as fp:
                    fp.write(content)
            print("Reference successfully created!")
            return 0
        print("Unsupported command: %s" % cmd)
        return 1

class MockCurl:
    """
    Create mock curl executable

    This class can be used to create a mock curl
    executable, which in turn can be used in place of
    the actual program for testing purposes.

    To create a mock executable, use the 'create' static
    method, e.g.

    >>> MockCurl.create("/tmp/bin/curl",
    ...                 source_dir="/tmp/server",
    ...                 upload_dir="/tmp/uploads")

    Downloads are fetched from 'source_dir', using the
    path component of the URL (e.g. 'ftp://host/pub/file'
    is fetched from 'source_dir/pub/file'). Uploads (via
    '-T') are copied into 'upload_dir', and the details
    of each upload are appended to 'curl_uploads.txt' in
    the same directory.

    The executable can be configured on creation to
    produce different error conditions when run:

    - the exit code can be set to an arbitrary value
      via the `exit_code` argument
    - the `user` argument sets credentials which must be
      supplied for downloads to succeed
    """

    @staticmethod
    def create(path,source_dir=None,upload_dir=None,user=None,
               exit_code=0):
        """
        Create a "mock" curl executable

        Arguments:
          path (str): path to the new executable
            to create. The final executable must
            not exist, however the directory it
            will be created in must.
          source_dir (str): directory to serve
            downloads from
          upload_dir (str): directory to copy
            uploads to
          user (str): if set then downloads will
            fail unless these credentials are
            supplied
          exit_code (int): exit code that the
            mock executable should complete with
        """
        return _write_mock_exe(path,"MockCurl",
                               "source_dir=%r,upload_dir=%r,user=%r,"
                               "exit_code=%s" %
                               (source_dir,upload_dir,user,exit_code))

    def __init__(self,source_dir=None,upload_dir=None,user=None,
                 exit_code=0):
        """
        Internal: configure the mock curl
        """
        self._source_dir = source_dir
        self._upload_dir = upload_dir
        self._user = user
        self._exit_code = exit_code

    def main(self,args):
        """
        Internal: provides mock curl functionality
        """
        p = argparse.ArgumentParser(prog="curl")
        p.add_argument("--user","-u",action="store")
        p.add_argument("--fail",action="store_true")
        p.add_argument("--output","-o",action="store")
        p.add_argument("-T",action="store",dest="upload_file")
        p.add_argument("-H",action="append",dest="headers")
        p.add_argument("-k",action="store_true")
        p.add_argument("url")
        args = p.parse_args(args)
        if self._exit_code != 0:
            return self._exit_code
        if args.upload_file:
            # Upload
            if not os.path.isfile(args.upload_file):
                print("curl: Can't open '%s'!" % args.upload_file)
                return 26
            if self._upload_dir:
                shutil.copy(args.upload_file,self._upload_dir)
                with open(os.path.join(self._upload_dir,
                                       "curl_uploads.txt"),'at') as fp:
                    fp.write("%s\t%s\t%s\t%s\n" %
                             (os.path.basename(args.upload_file),
                              args.url,
                              args.user,
                              ';'.join(args.headers or [])))
            return 0
        # Download
        if self._user is not None and args.user != self._user:
            print("curl: (67) Access denied: 401")
            return 67
        url_path = args.url.split("://",1)[-1].split('/',1)[-1]
        src = None
        if self._source_dir:
            src = os.path.join(self._source_dir,url_path)
        if src is None or not os.path.isfile(src):
            if args.fail:
                print("curl: (22) The requested URL returned error: 404")
                return 22
            content = b"404 Not Found\n"
        else:
            with open(src,'rb') as fp:
                content = fp.read()
        if args.output:
            with open(args.output,'wb') as fp:
                fp.write(content)
        else:
            sys.stdout.write(content.decode())
        return 0

class MockLftp:
    """
    Create mock lftp executable

    This class can be used to create a mock lftp
    executable, which in turn can be used in place of
    the actual program for testing purposes.

    To create a mock executable, use the 'create' static
    method, e.g.

    >>> MockLftp.create("/tmp/bin/lftp",upload_dir="/tmp/uploads")

    Files sent using 'put' commands are copied into
    'upload_dir', and the arguments are appended to the
    file 'lftp_uploads.txt' in the same directory.
    """

    @staticmethod
    def create(path,upload_dir=None,exit_code=0):
        """
        Create a "mock" lftp executable

        Arguments:
          path (str): path to the new executable
            to create. The final executable must
            not exist, however the directory it
            will be created in must.
          upload_dir (str): directory to copy
            uploads to
          exit_code (int): exit code that the
            mock executable should complete with
        """
        return _write_mock_exe(path,"MockLftp",
                               "upload_dir=%r,exit_code=%s" %
                               (upload_dir,exit_code))

    def __init__(self,upload_dir=None,exit_code=0):
        """
        Internal: configure the mock lftp
        """
        self._upload_dir = upload_dir
        self._exit_code = exit_code

    def main(self,args):
        """
        Internal: provides mock lftp functionality
        """
        p = argparse.ArgumentParser(prog="lftp")
        p.add_argument("-u",action="store",dest="user")
        p.add_argument("-e",action="store",dest="commands")
        p.add_argument("url")
        args = p.parse_args(args)
        if self._exit_code != 0:
            return self._exit_code
        for cmd in (args.commands or '').split(';'):
            cmd = shlex.split(cmd)
            if cmd and cmd[0] == "put":
                if not os.path.isfile(cmd[1]):
                    print("put: %s: No such file or directory" % cmd[1])
                    return 1
                if self._upload_dir:
                    shutil.copy(cmd[1],self._upload_dir)
        if self._upload_dir:
            with open(os.path.join(self._upload_dir,
                                   "lftp_uploads.txt"),'at') as fp:
                fp.write("%s\t%s\t%s\n" % (args.url,
                                           args.user,
                                           args.commands))
        return 0

#######################################################################
# Functions for creating mock data
#######################################################################

def read_mock_sample_sheet(sample_sheet):
    """
    Return the sample names from a (mock) sample sheet

    Sample names are taken from the first tab-separated
    field of each line after the header.
    """
    samples = []
    if sample_sheet and os.path.isfile(sample_sheet):
        with open(sample_sheet,'rt') as fp:
            for i,line in enumerate(fp):
                if i == 0 or not line.strip():
                    continue
                samples.append(line.split('\t')[0].strip())
    if not samples:
        samples = ["sample1"]
    return samples

def make_mock_cellranger_sample_outputs(sample_dir):
    """
    Create mock cellranger outputs for a single sample
    """
    for f in MOCK_CELLRANGER_SAMPLE_FILES:
        path = os.path.join(sample_dir,f)
        if not os.path.isdir(os.path.dirname(path)):
            os.makedirs(os.path.dirname(path))
        with open(path,'wt') as fp:
            fp.write(MOCK_CELLRANGER_SAMPLE_FILES[f])

def make_mock_pipeline_dir(path,samples=("testsample1",)):
    """
    Create a mock LCA pipeline checkout

    The mock checkout contains the nextflow script and
    config file, the test sample sheet template, the
    SARS-CoV-2 genome files and the reference MD5 checks
    directory.

    Arguments:
      path (str): directory to create
      samples (list): names of samples to put in the test
        sample sheet template
    """
    path = os.path.abspath(path)
    for d in ("src","conf","test",
              os.path.join("res","sars_cov2_genome"),
              os.path.join("src","refgenomes_md5checks")):
        os.makedirs(os.path.join(path,d))
    with open(os.path.join(path,"src","sc_processing_r7.nf"),'wt') as fp:
        fp.write("#!/usr/bin/env nextflow\n")
    with open(os.path.join(path,"conf","nextflow.config"),'wt') as fp:
        fp.write("profiles {\n  local {}\n  cluster {}\n}\n")
    with open(os.path.join(path,"test",
                           "Samples_testdata_template.xls"),'wt') as fp:
        fp.write("sample\tfastq_dir\n")
        for sample in samples:
            fp.write("%s\t{workdir}/testdata/%s\n" % (sample,sample))
    with open(os.path.join(path,"res","sars_cov2_genome",
                           "sars_cov2.fasta"),'wt') as fp:
        fp.write(">MN908947.3\nATTAAAGGTTTATACCTTCCCAGGTAACAAACCAACC\n")
    with open(os.path.join(path,"res","sars_cov2_genome",
                           "sars_cov2_genome.gtf"),'wt') as fp:
        fp.write("MN908947.3\tensembl\tgene\t266\t21555\t.\t+\t.\t"
                 "gene_id \"ORF1ab\"; gene_biotype \"protein_coding\";\n")
    return path

def make_mock_work_dir(path,samples=("testsample1",)):
    """
    Create a mock working directory for test runs

    The working directory contains empty 'refgenomes' and
    'testdata' subdirectories, and a 'CHECKSUM_testrun'
    file with the checksums for the mock nextflow outputs
    (relative to the 'run' directory).

    Arguments:
      path (str): directory to create
      samples (list): names of samples in the test data
    """
    path = os.path.abspath(path)
    for d in ("refgenomes","testdata"):
        os.makedirs(os.path.join(path,d))
    with open(os.path.join(path,"testdata","CHECKSUM_testrun"),'wt') as fp:
        for sample in samples:
            for f in sorted(MOCK_CELLRANGER_SAMPLE_FILES):
                if not f.endswith(".tsv") and not f.endswith(".mtx"):
                    continue
                fp.write("%s  ../cellranger/%s/%s\n" %
                         (hashlib.md5(MOCK_CELLRANGER_SAMPLE_FILES[f].\
                                      encode()).hexdigest(),
                          sample,
                          f))
    return path

def make_mock_ensembl_release(server_dir,species="homo_sapiens",
                              genome="GRCh38",release="99",
                              bad_checksum=False):
    """
    Create mock Ensembl FASTA and GTF files for a release

    The files are created under 'server_dir' mirroring the
    layout of the Ensembl FTP site (i.e. starting with
    'pub/release-RELEASE/...'), along with CHECKSUMS files
    in the format output by the 'sum' program.

    Arguments:
      server_dir (str): top-level directory of the mock
        server
      species (str): species name (e.g. 'homo_sapiens')
      genome (str): genome release (e.g. 'GRCh38')
      release (str): Ensembl release
      bad_checksum (bool): if True then write incorrect
        checksums for the files
    """
    Species = species.capitalize()
    fasta_dir = os.path.join(server_dir,"pub","release-%s" % release,
                             "fasta",species,"dna")
    gtf_dir = os.path.join(server_dir,"pub","release-%s" % release,
                           "gtf",species)
    for d in (fasta_dir,gtf_dir):
        if not os.path.isdir(d):
            os.makedirs(d)
    fasta = os.path.join(fasta_dir,"%s.%s.dna.primary_assembly.fa.gz" %
                         (Species,genome))
    with gzip.open(fasta,'wt') as fp:
        fp.write(">1 dna:chromosome chromosome:%s:1:1:100:1 REF\n"
                 "NNNNNNNNNNACGTACGTACGTACGTACGTACGTACGTACGT\n" % genome)
    gtf = os.path.join(gtf_dir,"%s.%s.%s.gtf.gz" % (Species,genome,release))
    with gzip.open(gtf,'wt') as fp:
        fp.write("#!genome-build %s\n" % genome)
        fp.write("1\tensembl\tgene\t11\t40\t.\t+\t.\tgene_id \"G1\"; "
                 "gene_biotype \"protein_coding\";\n")
        fp.write("1\tensembl\tgene\t12\t30\t.\t+\t.\tgene_id \"G2\"; "
                 "gene_biotype \"misc_RNA\";\n")
    for f,d in ((fasta,fasta_dir),(gtf,gtf_dir)):
        checksum,blocks = bsd_sum(f)
        if bad_checksum:
            checksum = (checksum + 1) % 65536
        with open(os.path.join(d,"CHECKSUMS"),'at') as fp:
            fp.write("%05d %5d %s\n" % (checksum,blocks,os.path.basename(f)))
    return server_dir

def _write_mock_exe(path,class_name,args):
    # Internal: write a Python-based mock executable which runs
    # the 'main' method of the named class
    path = os.path.abspath(path)
    print("Building mock executable: %s" % path)
    # Don't clobber an existing executable
    assert(os.path.exists(path) is False)
    with open(path,'wt') as fp:
        fp.write(_MOCK_EXE_TEMPLATE % (sys.executable,
                                       _PACKAGE_PARENT_DIR,
                                       class_name,
                                       class_name,
                                       args))
    os.chmod(path,0o775)
    with open(path,'rt') as fp:
        print("%s:" % os.path.basename(path))
        print("%s" % fp.read())
    return path
