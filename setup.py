"""Description

Setup script to install lca_pipeline

Copyright (C) Helmholtz Zentrum Muenchen 2020

"""

# Hack to acquire all scripts that we want to
# install into 'bin'
from glob import glob
scripts = []
for pattern in ('bin/*.py',):
    scripts.extend(glob(pattern))

# Installation requirements
install_requires = ['genomics-bcftbx',
                    'psutil']

# Setup for installation etc
from setuptools import setup
import lca_pipeline
setup(name = "lca_pipeline",
      version = lca_pipeline.get_version(),
      description = 'Set up and run the Lung Cell Atlas cellranger pipeline',
      long_description = """Utilities to set up and run the Lung Cell Atlas
      (LCA) single cell RNA-seq processing pipeline, which uses nextflow
      and cellranger, and to archive and upload the outputs""",
      packages = ['lca_pipeline',
                  'lca_pipeline.cli',
                  'lca_pipeline.commands',],
      # Pull in dependencies
      install_requires = install_requires,
      # Test requirements
      extras_require = { 'test': ['pytest'] },
      tests_require=['pytest'],
      # Scripts
      scripts = scripts,
      # Sample configuration file
      package_data = { 'lca_pipeline': ['etc/*.sample'] },
      classifiers=[
          "Development Status :: 4 - Beta",
          "Environment :: Console",
          "Intended Audience :: End Users/Desktop",
          "Intended Audience :: Science/Research",
          "Operating System :: POSIX :: Linux",
          "Topic :: Scientific/Engineering",
          "Topic :: Scientific/Engineering :: Bio-Informatics",
          "Programming Language :: Python :: 3",
          'Programming Language :: Python :: 3.6',
          'Programming Language :: Python :: 3.7',
          'Programming Language :: Python :: 3.8',
      ],
      include_package_data=True,
      zip_safe = False)
