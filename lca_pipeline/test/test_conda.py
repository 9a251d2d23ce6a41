#######################################################################
# Tests for conda.py module
#######################################################################

import unittest
import tempfile
import shutil
import os
from io import StringIO
from lca_pipeline.command import Command
from lca_pipeline.conda import CondaWrapper
from lca_pipeline.conda import CondaWrapperError
from lca_pipeline.conda import CondaCreateEnvError
from lca_pipeline.conda import DEFAULT_CONDA_CHANNELS
from lca_pipeline.mock import MockConda

# Set to False to keep test output dirs
REMOVE_TEST_OUTPUTS = True

# Tests

class TestCondaWrapper(unittest.TestCase):

    def setUp(self):
        # Make a temporary working dir
        self.working_dir = tempfile.mkdtemp(
            suffix='TestCondaWrapper')
        # Save PATH
        self.save_path = os.environ['PATH']

    def tearDown(self):
        # Remove temp dir
        if REMOVE_TEST_OUTPUTS and os.path.exists(self.working_dir):
            shutil.rmtree(self.working_dir)
        # Restore PATH
        os.environ['PATH'] = self.save_path

    def _make_mock_conda(self,version="4.8.2",create_fails=False,
                         activate_fails=False):
        # Internal: make a mock conda installation
        self.conda_dir = os.path.join(self.working_dir,
                                      "conda")
        self.conda_bin_dir = os.path.join(self.conda_dir,
                                          "bin")
        self.conda_env_dir = os.path.join(self.conda_dir,
                                          "envs")
        # Create mock conda using supplied options
        MockConda.create(self.conda_dir,
                         version=version,
                         create_fails=create_fails,
                         activate_fails=activate_fails)
        self.conda = os.path.join(self.conda_bin_dir,"conda")
        # Update PATH (put mock conda first)
        os.environ['PATH'] = self.conda_bin_dir + \
                             os.pathsep + \
                             os.environ['PATH']

    def test_conda_wrapper_conda_version(self):
        """
        CondaWrapper: get conda version
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        self.assertEqual(conda.version,"4.8.2")

    def test_conda_wrapper_conda_not_specified(self):
        """
        CondaWrapper: check properties when conda exe not specified
        """
        self._make_mock_conda()
        conda = CondaWrapper()
        self.assertEqual(conda.conda,self.conda)
        self.assertTrue(conda.is_installed)
        self.assertEqual(conda.env_dir,self.conda_env_dir)
        self.assertEqual(conda.list_envs,[])

    def test_conda_wrapper_conda_defaults(self):
        """
        CondaWrapper: check properties for default env dir
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        self.assertEqual(conda.conda,self.conda)
        self.assertTrue(conda.is_installed)
        self.assertEqual(conda.env_dir,self.conda_env_dir)
        self.assertEqual(conda.channels,list(DEFAULT_CONDA_CHANNELS))
        self.assertEqual(conda.list_envs,[])

    def test_conda_wrapper_non_default_env_dir_and_channels(self):
        """
        CondaWrapper: check properties for non-default env dir and channels
        """
        self._make_mock_conda()
        env_dir = os.path.join(self.working_dir,"envs")
        os.mkdir(env_dir)
        conda = CondaWrapper(conda=self.conda,
                             env_dir=env_dir,
                             channels=('bioconda',))
        self.assertEqual(conda.env_dir,env_dir)
        self.assertEqual(conda.channels,['bioconda'])
        self.assertEqual(conda.list_envs,[])
        # Empty channel list
        conda = CondaWrapper(conda=self.conda,channels=())
        self.assertEqual(conda.channels,[])

    def test_conda_wrapper_not_installed(self):
        """
        CondaWrapper: check properties when conda is not installed
        """
        conda = CondaWrapper(conda=os.path.join(self.working_dir,
                                                "bin","conda"))
        self.assertFalse(conda.is_installed)
        self.assertEqual(conda.version,None)
        self.assertRaises(CondaWrapperError,
                          getattr,conda,'base_dir')
        self.assertRaises(CondaWrapperError,
                          conda.create_env,
                          "samtools@1.10",
                          "samtools=1.10")

    def test_conda_wrapper_base_dir(self):
        """
        CondaWrapper: get base directory from 'conda info --base'
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        self.assertEqual(conda.base_dir,self.conda_dir)

    def test_conda_wrapper_create_env(self):
        """
        CondaWrapper: create new environment
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        self.assertEqual(conda.list_envs,[])
        env = conda.create_env("cr3-velocyto-scanpy",
                               "samtools=1.10",
                               "nextflow=19.10")
        self.assertEqual(env,os.path.join(self.conda_env_dir,
                                          "cr3-velocyto-scanpy"))
        self.assertEqual(conda.list_envs,["cr3-velocyto-scanpy"])
        for exe in ("samtools","nextflow"):
            self.assertTrue(os.path.exists(os.path.join(env,"bin",exe)))
        with open(os.path.join(env,"channels.txt"),'rt') as fp:
            self.assertEqual(fp.read(),"conda-forge bioconda\n")

    def test_conda_wrapper_create_env_with_channels_and_log(self):
        """
        CondaWrapper: create new environment with channels and log
        """
        self._make_mock_conda()
        env_dir = os.path.join(self.working_dir,"envs")
        os.mkdir(env_dir)
        conda = CondaWrapper(conda=self.conda,env_dir=env_dir)
        log = StringIO()
        env = conda.create_env("cr3-velocyto-scanpy",
                               "samtools=1.10",
                               channels=('/data/work/conda-bld',
                                         'bioconda'),
                               log=log)
        self.assertEqual(env,os.path.join(env_dir,"cr3-velocyto-scanpy"))
        self.assertTrue(os.path.exists(os.path.join(env,"bin","samtools")))
        with open(os.path.join(env,"channels.txt"),'rt') as fp:
            self.assertEqual(fp.read(),"/data/work/conda-bld bioconda\n")
        self.assertTrue("Created environment %s" % env in log.getvalue())

    def test_conda_wrapper_create_env_already_exists(self):
        """
        CondaWrapper: creating an existing environment is not an error
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        env = conda.create_env("cr3-velocyto-scanpy","samtools=1.10")
        self.assertEqual(conda.create_env("cr3-velocyto-scanpy",
                                          "samtools=1.10"),
                         env)
        self.assertEqual(conda.list_envs,["cr3-velocyto-scanpy"])

    def test_conda_wrapper_create_env_fails(self):
        """
        CondaWrapper: raise exception when environment creation fails
        """
        self._make_mock_conda(create_fails=True)
        conda = CondaWrapper(conda=self.conda)
        self.assertRaises(CondaCreateEnvError,
                          conda.create_env,
                          "cr3-velocyto-scanpy",
                          "samtools=1.10")
        self.assertEqual(conda.list_envs,[])

    def test_conda_wrapper_activate_env_cmd(self):
        """
        CondaWrapper: get command to activate environment
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        env = conda.create_env("cr3-velocyto-scanpy","samtools=1.10")
        self.assertEqual(conda.activate_env_cmd(env),
                         "source %s/etc/profile.d/conda.sh\n"
                         "conda activate %s" % (self.conda_dir,env))

    def test_conda_wrapper_activate_env_cmd_old_conda(self):
        """
        CondaWrapper: get command to activate environment for conda < 4.4
        """
        self._make_mock_conda(version="4.3.30")
        conda = CondaWrapper(conda=self.conda)
        env = conda.create_env("cr3-velocyto-scanpy","samtools=1.10")
        self.assertEqual(conda.activate_env_cmd(env),
                         "source %s/bin/activate %s" % (self.conda_dir,env))

    def test_conda_wrapper_run_in_env(self):
        """
        CondaWrapper: run command in activated environment
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        env = conda.create_env("cr3-velocyto-scanpy","samtools=1.10")
        tee = StringIO()
        status = conda.run_in_env(Command('samtools','hello'),env,
                                  tee=tee)
        self.assertEqual(status,0)
        self.assertEqual(tee.getvalue(),"hello\n")

    def test_conda_wrapper_run_in_env_working_dir(self):
        """
        CondaWrapper: run command in environment in working directory
        """
        self._make_mock_conda()
        conda = CondaWrapper(conda=self.conda)
        env = conda.create_env("cr3-velocyto-scanpy","samtools=1.10")
        run_dir = os.path.join(self.working_dir,"run")
        os.mkdir(run_dir)
        tee = StringIO()
        status = conda.run_in_env(Command('/bin/bash','-c',
                                          'pwd; echo $CONDA_PREFIX'),
                                  env,
                                  working_dir=run_dir,
                                  tee=tee)
        self.assertEqual(status,0)
        self.assertEqual(tee.getvalue().split('\n'),
                         [os.path.realpath(run_dir),env,""])

    def test_conda_wrapper_run_in_env_activate_fails(self):
        """
        CondaWrapper: run command fails if environment can't be activated
        """
        self._make_mock_conda(activate_fails=True)
        conda = CondaWrapper(conda=self.conda)
        env = conda.create_env("cr3-velocyto-scanpy","samtools=1.10")
        status = conda.run_in_env(Command('samtools','hello'),env,
                                  tee=StringIO())
        self.assertEqual(status,1)
