"""OpenTelemetry metrics for temporary PKI generation."""

from opentelemetry import metrics

# Get meter for tmppki module
meter = metrics.get_meter("tmppki")

# Key generation
keys_generated_total = meter.create_counter(
    name="tmppki_keys_generated_total",
    description="Total private keys generated",
    unit="1",
)

key_generation_duration = meter.create_histogram(
    name="tmppki_key_generation_duration_seconds",
    description="Private key generation duration in seconds",
    unit="s",
)

# Certificate issuance
certificates_issued_total = meter.create_counter(
    name="tmppki_certificates_issued_total",
    description="Total certificates issued",
    unit="1",
)

# Filesystem artifacts
files_written_total = meter.create_counter(
    name="tmppki_files_written_total",
    description="Total bundle files written",
    unit="1",
)

files_removed_total = meter.create_counter(
    name="tmppki_files_removed_total",
    description="Total bundle files removed",
    unit="1",
)

cleanup_failures_total = meter.create_counter(
    name="tmppki_cleanup_failures_total",
    description="Total bundle files that could not be removed",
    unit="1",
)

# Bundle lifecycle
state_transitions_total = meter.create_counter(
    name="tmppki_state_transitions_total",
    description="Total bundle state transitions",
    unit="1",
)


class PKIMetrics:
    """Facade for tmppki metrics with proper labels."""

    def record_key_generated(self, algorithm: str, duration_seconds: float) -> None:
        """Record key generation. Labels: algorithm=ecdsa|ed25519|rsa"""
        keys_generated_total.add(1, {"algorithm": algorithm})
        key_generation_duration.record(duration_seconds, {"algorithm": algorithm})

    def record_certificate_issued(self, mode: str) -> None:
        """Record certificate issuance. Labels: mode=self_signed|ca_signed"""
        certificates_issued_total.add(1, {"mode": mode})

    def record_file_written(self, artifact: str) -> None:
        files_written_total.add(1, {"artifact": artifact})

    def record_file_removed(self, artifact: str) -> None:
        files_removed_total.add(1, {"artifact": artifact})

    def record_cleanup_failure(self, artifact: str) -> None:
        cleanup_failures_total.add(1, {"artifact": artifact})

    def record_state_transition(self, from_state: str, to_state: str, event: str) -> None:
        state_transitions_total.add(
            1, {"from_state": from_state, "to_state": to_state, "event": event}
        )


# Singleton instance
pki_metrics = PKIMetrics()
