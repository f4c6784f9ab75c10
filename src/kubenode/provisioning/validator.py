#!/usr/bin/env python3
"""
KUBENODE VALIDATOR - The Judge
------------------------------
Post-install check that the cluster runs the Kubernetes version that was
asked for. Client and server must agree with each other and the server
must report exactly the requested version. There is no retry: a single
mismatch fails the install.

Author: KubeNode Team
Date: 2026-10-18
"""

import json
import logging
from typing import Tuple

from kubenode.core.errors import VersionMismatchError

logger = logging.getLogger("kubenode.validator")


class KubeVersionValidator:

    def __init__(self, requested: str):
        """
        Args:
            requested: The version passed to the installer, e.g. '1.31.0'.
        """
        self.requested = requested if requested.startswith("v") else f"v{requested}"

    @staticmethod
    def parse(kubectl_version_json: str) -> Tuple[str, str]:
        """Extracts gitVersion for client and server from 'kubectl version -o json'."""
        try:
            report = json.loads(kubectl_version_json)
        except json.JSONDecodeError as e:
            raise VersionMismatchError(f"Unreadable kubectl version output: {e}", "", "", "")
        client = report.get("clientVersion", {}).get("gitVersion", "")
        server = report.get("serverVersion", {}).get("gitVersion", "")
        return client, server

    def verify(self, client: str, server: str) -> str:
        logger.info("Client version: %s", client)
        logger.info("Server version: %s", server)

        if client != server:
            raise VersionMismatchError(
                "Client and server versions differ", client, server, self.requested)

        if server != self.requested:
            raise VersionMismatchError(
                "Requested version does not match the server version",
                client, server, self.requested)

        logger.info("Requested version matches the server version")
        return f"Kubernetes {server} (client and server agree)"

    def check(self, runner) -> str:
        output = runner.capture(["kubectl", "version", "-o", "json"])
        client, server = self.parse(output)
        return self.verify(client, server)
