# SPDX-FileCopyrightText: 2023-present E.W.Ayers <contact@edayers.com>
#
# SPDX-License-Identifier: MIT

from .errors import ErrorKind, LedgerError
from .records import CallContext, Metadata, Principal, Record
from .registry import BookRegistry
from .settings import Settings
from .store import Engine, MemEngine, SqliteEngine, Table
from .__about__ import __version__
