# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Blueprint harness.

Runs short-lived automation workflows ("blueprints") that mix exact
commands with agent-driven steps inside an isolated sandbox.
"""
