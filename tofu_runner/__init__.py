"""tofu-runner — provision OpenTofu, run a plan, ship the artifacts."""

__version__ = "0.1.0"
