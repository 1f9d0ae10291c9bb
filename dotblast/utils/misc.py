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

"""Runtime switches for logging and progress bars."""

from typing import Optional, Union

from .. import config

logger = config.get_logger(__name__)


def set_loggers(level: Union[str, int] = 'INFO'):
    """Set the level of the ``dotblast`` logger.

    Examples
    --------
    >>> from dotblast import config, set_loggers
    >>> lvl = config.logger.level
    >>> set_loggers('WARNING')
    >>> set_loggers(lvl)

    """
    config.logger.setLevel(level)


def set_pbars(hide: Optional[bool] = None,
              leave: Optional[bool] = None,
              jupyter: Optional[bool] = None) -> None:
    """Change how batch NBLASTs show progress.

    Arguments left at ``None`` keep their current setting.

    Parameters
    ----------
    hide :      bool, optional
                If True, never show progress bars.
    leave :     bool, optional
                If True, keep progress bars around after they have finished.
    jupyter :   bool, optional
                Set to False to use classic tqdm bars even in a notebook.

    Examples
    --------
    >>> from dotblast import set_pbars
    >>> set_pbars(hide=True)
    >>> set_pbars(hide=False, jupyter=False)

    """
    if hide is not None:
        config.pbar_hide = bool(hide)

    if leave is not None:
        config.pbar_leave = bool(leave)

    if jupyter is None:
        return

    if not jupyter:
        config.tqdm = config.tqdm_classic
    elif config.is_jupyter():
        config.tqdm = config.tqdm_notebook
    else:
        logger.error('No Jupyter environment detected.')
