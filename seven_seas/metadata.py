# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Client identification for outgoing HTTP requests.

Every request to the RPC node and the storage service carries an
``x-seven-seas-client`` header of the form ``seven-seas/{version}``, with the
version read from the installed package metadata.

Examples:
    ::

        from seven_seas.metadata import Metadata

        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
"""

import importlib.metadata as metadata

PACKAGE_NAME = "seven-seas"


class Metadata:
    CLIENT_HEADER = "x-seven-seas-client"

    @staticmethod
    def get_client_header_val():
        """Return ``seven-seas/{version}``.

        Raises:
            PackageNotFoundError: If the package is not installed.
        """
        version = metadata.version(PACKAGE_NAME)
        return f"seven-seas/{version}"
