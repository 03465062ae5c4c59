"""Command-line options of the metrics server and their validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from resmetrics.model import (
    KubeletClientConfig,
    NodeAddressType,
    RestClientConfig,
    TLSClientConfig,
)
from resmetrics.quantity import format_duration

DEFAULT_KUBELET_PORT = 10250
DEFAULT_KUBELET_REQUEST_TIMEOUT = timedelta(seconds=10)
DEFAULT_METRIC_RESOLUTION = timedelta(seconds=60)
MIN_METRIC_RESOLUTION = timedelta(seconds=10)

DEFAULT_ADDRESS_TYPE_PRIORITY: tuple[str, ...] = (
    NodeAddressType.HOSTNAME.value,
    NodeAddressType.INTERNAL_DNS.value,
    NodeAddressType.INTERNAL_IP.value,
    NodeAddressType.EXTERNAL_DNS.value,
    NodeAddressType.EXTERNAL_IP.value,
)


def _duration_text(duration: timedelta) -> str:
    return format_duration((duration // timedelta(microseconds=1)) * 1000)


@dataclass
class KubeletClientOptions:
    """Options that control how kubelets are contacted."""

    kubelet_use_node_status_port: bool = False
    kubelet_port: int = DEFAULT_KUBELET_PORT
    insecure_kubelet_tls: bool = False
    kubelet_preferred_address_types: list[str] = field(
        default_factory=lambda: list(DEFAULT_ADDRESS_TYPE_PRIORITY)
    )
    kubelet_ca_file: str = ""
    kubelet_client_key_file: str = ""
    kubelet_client_cert_file: str = ""
    deprecated_completely_insecure_kubelet: bool = False
    kubelet_request_timeout: timedelta = DEFAULT_KUBELET_REQUEST_TIMEOUT

    def validate(self) -> list[str]:
        """Return a message for every conflicting or invalid setting."""
        errors: list[str] = []
        insecure = self.deprecated_completely_insecure_kubelet
        if self.kubelet_ca_file and self.insecure_kubelet_tls:
            errors.append(
                "cannot use both --kubelet-certificate-authority and --kubelet-insecure-tls"
            )
        if bool(self.kubelet_client_key_file) != bool(self.kubelet_client_cert_file):
            errors.append("need both --kubelet-client-key and --kubelet-client-certificate")
        if self.kubelet_client_key_file and insecure:
            errors.append(
                "cannot use both --kubelet-client-key and "
                "--deprecated-kubelet-completely-insecure"
            )
        if self.kubelet_client_cert_file and insecure:
            errors.append(
                "cannot use both --kubelet-client-certificate and "
                "--deprecated-kubelet-completely-insecure"
            )
        if self.insecure_kubelet_tls and insecure:
            errors.append(
                "cannot use both --kubelet-insecure-tls and "
                "--deprecated-kubelet-completely-insecure"
            )
        if self.kubelet_ca_file and insecure:
            errors.append(
                "cannot use both --kubelet-certificate-authority and "
                "--deprecated-kubelet-completely-insecure"
            )
        if self.kubelet_request_timeout <= timedelta(0):
            errors.append("kubelet-request-timeout should be positive")
        return errors

    def config(self, rest_config: RestClientConfig) -> KubeletClientConfig:
        """Build the kubelet client configuration on top of ``rest_config``."""
        result = KubeletClientConfig(
            client=rest_config.copy(),
            address_type_priority=list(self.kubelet_preferred_address_types),
            scheme="https",
            default_port=self.kubelet_port,
            use_node_status_port=self.kubelet_use_node_status_port,
        )
        if self.deprecated_completely_insecure_kubelet:
            result.scheme = "http"
            # Drop credentials so they never reach an unencrypted endpoint.
            result.client = result.client.anonymous()
            result.client.tls_client_config = TLSClientConfig()
        tls = result.client.tls_client_config
        if self.insecure_kubelet_tls:
            tls.insecure = True
            tls.ca_data = None
            tls.ca_file = ""
        if self.kubelet_ca_file:
            tls.ca_file = self.kubelet_ca_file
            tls.ca_data = None
        if self.kubelet_client_cert_file:
            tls.cert_file = self.kubelet_client_cert_file
            tls.cert_data = None
        if self.kubelet_client_key_file:
            tls.key_file = self.kubelet_client_key_file
            tls.key_data = None
        return result


@dataclass
class Options:
    """Top-level options of the metrics server."""

    kubelet_client: KubeletClientOptions = field(default_factory=KubeletClientOptions)
    metric_resolution: timedelta = DEFAULT_METRIC_RESOLUTION
    show_version: bool = False
    kubeconfig: str = ""
    disable_auth_for_testing: bool = False

    def validate(self) -> list[str]:
        """Return a message for every invalid setting, kubelet options included."""
        errors = self.kubelet_client.validate()
        if self.metric_resolution < MIN_METRIC_RESOLUTION:
            errors.append(
                "metric-resolution should be a time duration at least 10s, "
                f"but value {_duration_text(self.metric_resolution)} provided"
            )
        timeout = self.kubelet_client.kubelet_request_timeout
        if self.metric_resolution * 9 / 10 < timeout:
            errors.append(
                "metric-resolution should be larger than kubelet-request-timeout, "
                f"but metric-resolution value {_duration_text(self.metric_resolution)} "
                f"kubelet-request-timeout value {_duration_text(timeout)} provided"
            )
        return errors