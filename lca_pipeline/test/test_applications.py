#######################################################################
# Tests for applications.py module
#######################################################################
import unittest
from lca_pipeline.applications import nextflow
from lca_pipeline.applications import cellranger
from lca_pipeline.applications import conda
from lca_pipeline.applications import general
from lca_pipeline.applications import MKGTF_BIOTYPES

class TestNextflow(unittest.TestCase):

    def test_nextflow_run(self):
        """nextflow.run: generate 'nextflow run' command line
        """
        nf = nextflow.run('/lca/src/sc_processing_r7.nf',
                          'local',
                          '/lca/conf/nextflow.config',
                          '/data/out/pipelinerun_v0.1.0',
                          '/data/samples.txt',
                          '/envs/cr3-velocyto-scanpy',
                          24,80,12)
        self.assertEqual(nf.command_line,
                         ['nextflow','run','/lca/src/sc_processing_r7.nf',
                          '-profile','local',
                          '-c','/lca/conf/nextflow.config',
                          '--outdir','/data/out/pipelinerun_v0.1.0/',
                          '--samplesheet','/data/samples.txt',
                          '--condaenvpath','/envs/cr3-velocyto-scanpy',
                          '--localcores','24',
                          '--localmemGB','80',
                          '--samtools_thr','12',
                          '-bg'])

    def test_nextflow_run_cluster_options(self):
        """nextflow.run: generate command line with queue and cluster options
        """
        nf = nextflow.run('/lca/src/sc_processing_r7.nf',
                          'cluster',
                          '/lca/conf/nextflow.config',
                          '/data/out/pipelinerun_v0.1.0/',
                          '/data/samples.txt',
                          '/envs/cr3-velocyto-scanpy',
                          24,80,12,
                          queue='gpu_p',
                          cluster_options='qos=icb_other --nice=1000',
                          background=False)
        self.assertEqual(nf.command_line,
                         ['nextflow','run','/lca/src/sc_processing_r7.nf',
                          '-profile','cluster',
                          '-c','/lca/conf/nextflow.config',
                          '--outdir','/data/out/pipelinerun_v0.1.0/',
                          '--samplesheet','/data/samples.txt',
                          '--condaenvpath','/envs/cr3-velocyto-scanpy',
                          '--localcores','24',
                          '--localmemGB','80',
                          '--samtools_thr','12',
                          '--queue','gpu_p',
                          '--clusterOpt','qos=icb_other --nice=1000'])

class TestCellranger(unittest.TestCase):

    def test_cellranger_sitecheck(self):
        """cellranger.sitecheck: generate 'cellranger sitecheck' command
        """
        self.assertEqual(str(cellranger.sitecheck()),
                         "cellranger sitecheck")

    def test_cellranger_mkgtf(self):
        """cellranger.mkgtf: generate 'cellranger mkgtf' command
        """
        mkgtf = cellranger.mkgtf('annotation.gtf',
                                 'annotation.filtered.gtf')
        self.assertEqual(mkgtf.command_line[:4],
                         ['cellranger','mkgtf','annotation.gtf',
                          'annotation.filtered.gtf'])
        self.assertEqual(mkgtf.command_line[4:],
                         ["--attribute=gene_biotype:%s" % b
                          for b in MKGTF_BIOTYPES])
        self.assertEqual(len(MKGTF_BIOTYPES),17)

    def test_cellranger_mkgtf_with_biotypes(self):
        """cellranger.mkgtf: generate command with specified biotypes
        """
        mkgtf = cellranger.mkgtf('in.gtf','out.gtf',
                                 biotypes=('protein_coding',))
        self.assertEqual(str(mkgtf),
                         "cellranger mkgtf in.gtf out.gtf "
                         "--attribute=gene_biotype:protein_coding")

    def test_cellranger_mkref(self):
        """cellranger.mkref: generate 'cellranger mkref' command
        """
        mkref = cellranger.mkref(
            [('homo_sapiens_GRCh38_ensrel99_cr3.1.0',
              'genome.fa','annotation.filtered.gtf')],
            memgb=48,nthreads=20,ref_version='3.1.0')
        self.assertEqual(mkref.command_line,
                         ['cellranger','mkref',
                          '--genome=homo_sapiens_GRCh38_ensrel99_cr3.1.0',
                          '--fasta=genome.fa',
                          '--genes=annotation.filtered.gtf',
                          '--memgb','48',
                          '--nthreads','20',
                          '--ref-version=3.1.0'])

    def test_cellranger_mkref_two_genomes(self):
        """cellranger.mkref: generate command for two genomes
        """
        mkref = cellranger.mkref(
            [('homo_sapiens_GRCh38','genome.fa','annotation.filtered.gtf'),
             ('mus_musculus_GRCm38_ensrel99_cr3.1.0','genome2.fa',
              'annotation2.filtered.gtf')],
            memgb=48,nthreads=20)
        self.assertEqual(mkref.command_line,
                         ['cellranger','mkref',
                          '--genome=homo_sapiens_GRCh38',
                          '--fasta=genome.fa',
                          '--genes=annotation.filtered.gtf',
                          '--genome=mus_musculus_GRCm38_ensrel99_cr3.1.0',
                          '--fasta=genome2.fa',
                          '--genes=annotation2.filtered.gtf',
                          '--memgb','48',
                          '--nthreads','20'])

class TestConda(unittest.TestCase):

    def test_conda_create(self):
        """conda.create: generate 'conda create' command
        """
        create = conda.create('/opt/conda/bin/conda',
                              '/opt/conda/envs/cr3-velocyto-scanpy',
                              ('cellranger=3.1.0=0','samtools=1.10'),
                              channels=('/data/work/conda-bld',
                                        'conda-forge',
                                        'bioconda'))
        self.assertEqual(create.command_line,
                         ['/opt/conda/bin/conda','create',
                          '--prefix','/opt/conda/envs/cr3-velocyto-scanpy',
                          '-c','/data/work/conda-bld',
                          '-c','conda-forge',
                          '-c','bioconda',
                          '-y',
                          'cellranger=3.1.0=0','samtools=1.10'])

    def test_conda_info_base(self):
        """conda.info_base: generate 'conda info --base' command
        """
        self.assertEqual(str(conda.info_base()),"conda info --base")
        self.assertEqual(str(conda.info_base('/opt/conda/bin/conda')),
                         "/opt/conda/bin/conda info --base")

class TestGeneral(unittest.TestCase):

    def test_curl_download(self):
        """general.curl_download: generate command to download file
        """
        curl = general.curl_download('https://example.org/data.tar.gz',
                                     '/data/work/data.tar.gz')
        self.assertEqual(curl.command_line,
                         ['curl','https://example.org/data.tar.gz',
                          '--output','/data/work/data.tar.gz'])

    def test_curl_download_with_credentials(self):
        """general.curl_download: generate command with user and options
        """
        curl = general.curl_download('https://example.org/data.tar.gz',
                                     '/data/work/data.tar.gz',
                                     user='lca:secret',
                                     insecure=True,
                                     fail_on_error=True)
        self.assertEqual(curl.command_line,
                         ['curl','--user','lca:secret','--fail',
                          'https://example.org/data.tar.gz',
                          '--output','/data/work/data.tar.gz',
                          '-k'])

    def test_curl_upload(self):
        """general.curl_upload: generate command to upload file
        """
        curl = general.curl_upload(
            '/data/out/SITE_20200101_1200.testrun_v0.1.0.tar.gz',
            'https://cloud.example.org/public.php/webdav/'
            'SITE_20200101_1200.testrun_v0.1.0.tar.gz',
            user='AbCd1234:',
            headers=('X-Requested-With: XMLHttpRequest',))
        self.assertEqual(curl.command_line,
                         ['curl','--fail',
                          '-T',
                          '/data/out/SITE_20200101_1200.testrun_v0.1.0.tar.gz',
                          '-u','AbCd1234:',
                          '-H','X-Requested-With: XMLHttpRequest',
                          'https://cloud.example.org/public.php/webdav/'
                          'SITE_20200101_1200.testrun_v0.1.0.tar.gz'])

    def test_lftp_put(self):
        """general.lftp_put: generate command to upload file
        """
        lftp = general.lftp_put('/data/out/test.tar.gz','sftp.example.org')
        self.assertEqual(lftp.command_line,
                         ['lftp','-e','put /data/out/test.tar.gz; bye',
                          'sftp://sftp.example.org'])

    def test_lftp_put_with_user_port_and_dir(self):
        """general.lftp_put: generate command with user, port and directory
        """
        lftp = general.lftp_put('/data/out/test.tar.gz','sftp.example.org',
                                remote_dir='/uploads',
                                user='lca',
                                port='2222',
                                password='secret')
        self.assertEqual(lftp.command_line,
                         ['lftp','-u','lca,secret',
                          '-e','cd /uploads; put /data/out/test.tar.gz; bye',
                          'sftp://sftp.example.org:2222'])

    def test_lftp_put_quotes_paths_with_spaces(self):
        """general.lftp_put: generate command quoting paths with spaces
        """
        lftp = general.lftp_put('/data/LCA out/test.tar.gz',
                                'sftp.example.org',
                                remote_dir='/uploads/site 1',
                                user='lca')
        self.assertEqual(lftp.command_line,
                         ['lftp','-u','lca,',
                          '-e',"cd '/uploads/site 1'; "
                          "put '/data/LCA out/test.tar.gz'; bye",
                          'sftp://sftp.example.org'])
