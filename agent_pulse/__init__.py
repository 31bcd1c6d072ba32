"""AgentPulse: AI agent readiness audits for e-commerce sites."""

__version__ = "1.0.0"
