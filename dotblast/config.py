#    This script is part of dotblast.
#    Copyright (C) 2018 Philipp Schlegel
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, either version 3 of the License, or
#    (at your option) any later version.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.

import logging
import pint
import os

from pathlib import Path

logger = logging.getLogger('dotblast')


def default_logging():
    """Add a formatted stream handler to the ``dotblast`` logger.

    Called by default when dotblast is imported for the first time.
    To prevent this behaviour, set an environment variable:
    ``DOTBLAST_SKIP_LOG_SETUP=True``.
    """
    logger.setLevel(logging.INFO)
    if len(logger.handlers) == 0:
        sh = logging.StreamHandler()
        sh.setLevel(logging.DEBUG)
        # Create formatter and add it to the handlers
        formatter = logging.Formatter(
            '%(levelname)-5s : %(message)s (%(name)s)')
        sh.setFormatter(formatter)
        logger.addHandler(sh)


def remove_log_handlers():
    """Remove all handlers from the ``dotblast`` logger.

    It may be preferable to skip dotblast' default log handler being added in
    the first place. Do this by setting an environment variable before the
    first import: ``DOTBLAST_SKIP_LOG_SETUP=True``.
    """
    logger.handlers.clear()


skip_log_setup = os.environ.get('DOTBLAST_SKIP_LOG_SETUP', '').lower() == 'true'
if not skip_log_setup:
    default_logging()


def get_logger(name: str):
    if skip_log_setup:
        return logging.getLogger(name)
    return logger


# Default settings for progress bars
pbar_hide = False
pbar_leave = False

# Directory in which named score matrices (``smat_{name}.csv``) are looked up
smat_dir = Path(os.environ.get('DOTBLAST_SMAT_DIR',
                               Path(__file__).resolve().parent / 'nbl' / 'score_mats'))

# Names of the score matrices used for ``smat='auto'``
default_smat = 'fcwb'
default_smat_alpha = 'alpha_fcwb'

# Largest number of queries or targets a single batch will accept.
# Set to ``None`` to disable the check.
max_items = 4000

# Unit registry
ureg = pint.UnitRegistry()

# Set to true to hide all progress bars
headless = os.environ.get('DOTBLAST_HEADLESS', 'False').lower() == 'true'
if headless:
    logger.info('Running in headless mode.')
    pbar_hide = True


def _type_of_script():
    """Returns context in which dotblast is run. """
    try:
        ipy_str = str(type(get_ipython()))
        if 'zmqshell' in ipy_str:
            return 'jupyter'
        if 'terminal' in ipy_str:
            return 'ipython'
    except BaseException:
        return 'terminal'


def is_jupyter():
    """Test if dotblast is run in a Jupyter notebook."""
    return _type_of_script() == 'jupyter'


# Here, we import tqdm and determine whether we use classic notebook tbars
from tqdm.notebook import tqdm as tqdm_notebook
from tqdm import tqdm as tqdm_classic

# Keep this because `tqdm_notebook` is only a wrapper (type "function")
tqdm_class = tqdm_classic

if is_jupyter():
    tqdm = tqdm_notebook
else:
    tqdm = tqdm_classic
