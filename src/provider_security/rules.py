"""Security rule definitions and the hot-swappable rule registry.

Each rule wraps a ``check(provider, config)`` callable returning a list of
Violations. Checks may be plain functions or coroutines. Built-in rules
cover authentication, encryption, input validation, data protection,
network and configuration hygiene; each carries remediation guidance.
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from provider_security.exceptions import ConfigurationError
from provider_security.models import Provider, RemediationGuidance, RuleCategory, Severity, Violation

logger = logging.getLogger(__name__)

RuleCheck = Callable[[Provider, dict[str, Any]], Any]


class SecurityRule(BaseModel):
    """A named, severity-tagged check over one provider's configuration."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    name: str
    description: str = ""
    severity: Severity
    category: RuleCategory
    compliance: list[str] = Field(default_factory=list)
    check: RuleCheck = Field(exclude=True)

    async def evaluate(self, provider: Provider, config: dict[str, Any]) -> list[Violation]:
        """Run the check and normalise its output.

        Returned violations are always attributed to this rule.
        """
        result = self.check(provider, config)
        if inspect.isawaitable(result):
            result = await result
        violations: list[Violation] = []
        for item in result or []:
            violation = item if isinstance(item, Violation) else Violation.model_validate(item)
            if violation.rule_id != self.id:
                violation = violation.model_copy(update={"rule_id": self.id})
            violations.append(violation)
        return violations


class RuleRegistry:
    """Rules keyed by id. Readers take a snapshot per audit run."""

    def __init__(self, rules: Iterable[SecurityRule] | None = None) -> None:
        self._rules: dict[str, SecurityRule] = {}
        for rule in default_rules() if rules is None else rules:
            self._rules[rule.id] = rule

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def add(self, rule: SecurityRule) -> bool:
        """Insert or replace a rule. Returns True if an existing rule was replaced."""
        replaced = rule.id in self._rules
        self._rules[rule.id] = rule
        return replaced

    def remove(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None

    def update(self, rule_id: str, **changes: Any) -> SecurityRule:
        """Replace fields on an existing rule.

        Raises:
            ConfigurationError: If the rule is unknown or the id is changed.
        """
        current = self._rules.get(rule_id)
        if current is None:
            raise ConfigurationError(f"Unknown rule: {rule_id}", details={"rule_id": rule_id})
        if changes.get("id", rule_id) != rule_id:
            raise ConfigurationError("Rule id cannot be changed", details={"rule_id": rule_id})
        data = {**current.model_dump(), "check": current.check, **changes}
        updated = SecurityRule.model_validate(data)
        self._rules[rule_id] = updated
        return updated

    def get(self, rule_id: str) -> SecurityRule | None:
        return self._rules.get(rule_id)

    def list_rules(self, category: str | None = None) -> list[SecurityRule]:
        rules = list(self._rules.values())
        if category:
            rules = [r for r in rules if r.category == category]
        return rules

    def snapshot(self) -> tuple[SecurityRule, ...]:
        return tuple(self._rules.values())


# ---------------------------------------------------------------------------
# Built-in checks
# ---------------------------------------------------------------------------


def lookup(config: dict[str, Any], path: str, default: Any = None) -> Any:
    """Resolve a dotted path such as ``"tls.version"`` in a nested dict."""
    node: Any = config
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def _violation(rule_id: str, severity: Severity, tags: list[str], **fields: Any) -> Violation:
    return Violation(rule_id=rule_id, severity=severity, compliance=list(tags), **fields)


def check_password_policy(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if provider.type not in ("authentication", "database") or config.get("passwordPolicy"):
        return []
    return [
        _violation(
            "AUTH_001",
            "high",
            ["GDPR", "SOC2", "PCI"],
            message="No password policy configured",
            location="authentication configuration",
            recommendation=(
                "Implement strong password policy with minimum 12 characters, mixed case, "
                "numbers, and special characters"
            ),
            cwe_id="CWE-521",
            remediation=RemediationGuidance(
                config={
                    "passwordPolicy": {
                        "minLength": 12,
                        "requireUppercase": True,
                        "requireLowercase": True,
                        "requireNumbers": True,
                        "requireSpecialChars": True,
                        "preventReuse": 12,
                        "maxAge": 90,
                    }
                },
                steps=[
                    "Configure minimum password length of 12 characters",
                    "Require mixed case letters, numbers, and special characters",
                    "Implement password history to prevent reuse",
                    "Set password expiration policy",
                ],
            ),
        )
    ]


def check_mfa(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if provider.type != "authentication" or lookup(config, "mfa.enabled"):
        return []
    return [
        _violation(
            "AUTH_002",
            "critical",
            ["SOC2", "PCI", "HIPAA"],
            message="Multi-factor authentication not enabled",
            location="authentication configuration",
            recommendation="Enable MFA for all administrative accounts using TOTP, SMS, or hardware tokens",
            cwe_id="CWE-308",
            remediation=RemediationGuidance(
                config={"mfa": {"enabled": True, "methods": ["totp", "sms"], "backupCodes": True}},
                steps=[
                    "Enable MFA in authentication provider configuration",
                    "Configure TOTP and SMS as authentication methods",
                    "Generate backup codes for account recovery",
                    "Enforce MFA for all administrative accounts",
                ],
            ),
        )
    ]


def check_encryption_at_rest(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if provider.type not in ("database", "storage") or lookup(config, "encryption.atRest"):
        return []
    return [
        _violation(
            "ENC_001",
            "critical",
            ["GDPR", "CCPA", "SOC2", "PCI", "HIPAA"],
            message="Data encryption at rest not configured",
            location="data storage",
            recommendation="Enable AES-256 encryption for data at rest with proper key management",
            cwe_id="CWE-311",
            remediation=RemediationGuidance(
                config={
                    "encryption": {
                        "atRest": {"enabled": True, "algorithm": "AES-256-GCM", "keyRotation": True}
                    }
                },
                steps=[
                    "Enable encryption at rest with AES-256 algorithm",
                    "Configure secure key management system",
                    "Implement automatic key rotation",
                    "Verify encryption is applied to all sensitive data",
                ],
            ),
        )
    ]


def _tls_version(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def check_encryption_in_transit(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    version = _tls_version(lookup(config, "tls.version"))
    if lookup(config, "tls.enabled") and (version is None or version >= 1.2):
        return []
    return [
        _violation(
            "ENC_002",
            "critical",
            ["GDPR", "SOC2", "PCI", "HIPAA"],
            message="Insufficient TLS configuration for data in transit",
            location="network communication",
            recommendation="Enable TLS 1.2+ for all data transmission with strong cipher suites",
            cwe_id="CWE-319",
            remediation=RemediationGuidance(
                config={
                    "tls": {
                        "enabled": True,
                        "version": 1.3,
                        "cipherSuites": ["TLS_AES_256_GCM_SHA384", "TLS_CHACHA20_POLY1305_SHA256"],
                    }
                },
                steps=[
                    "Enable TLS 1.2 or higher for all connections",
                    "Configure strong cipher suites",
                    "Implement certificate validation",
                    "Disable insecure protocols (SSL, TLS 1.0/1.1)",
                ],
            ),
        )
    ]


def check_parameterized_queries(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if provider.type != "database" or lookup(config, "security.parameterizedQueries"):
        return []
    return [
        _violation(
            "VAL_001",
            "critical",
            ["SOC2", "PCI"],
            message="Parameterized queries not enforced",
            location="database queries",
            recommendation="Use parameterized queries and input validation to prevent SQL injection",
            cwe_id="CWE-89",
            remediation=RemediationGuidance(
                code='cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))',
                steps=[
                    "Implement parameterized queries for all database operations",
                    "Validate and sanitize all user inputs",
                    "Use ORM query builders with built-in protection",
                    "Implement query allowlisting for complex operations",
                ],
            ),
        )
    ]


def check_output_encoding(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if lookup(config, "security.outputEncoding"):
        return []
    return [
        _violation(
            "VAL_002",
            "high",
            ["SOC2"],
            message="Output encoding not configured",
            location="data handling",
            recommendation="Implement proper output encoding and Content Security Policy",
            cwe_id="CWE-79",
            remediation=RemediationGuidance(
                config={
                    "security": {
                        "outputEncoding": True,
                        "contentSecurityPolicy": {
                            "enabled": True,
                            "directives": {"default-src": "'self'", "img-src": "'self' data:"},
                        },
                    }
                },
                steps=[
                    "Enable output encoding for all user-generated content",
                    "Implement Content Security Policy headers",
                    "Sanitize HTML input using trusted libraries",
                    "Use templating engines with auto-escaping",
                ],
            ),
        )
    ]


def check_personal_data_classification(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if lookup(config, "dataClassification.personalData"):
        return []
    return [
        _violation(
            "DATA_001",
            "high",
            ["GDPR", "CCPA"],
            message="Personal data not properly classified",
            location="data classification",
            recommendation="Implement data classification system to identify and protect personal data",
            cwe_id="CWE-359",
            remediation=RemediationGuidance(
                config={"dataClassification": {"personalData": {"fields": ["email", "name", "phone"]}}},
                steps=[
                    "Identify all fields containing personal data",
                    "Implement encryption for personal data fields",
                    "Enable access logging for personal data",
                    "Define data retention and deletion policies",
                ],
            ),
        )
    ]


def check_anonymization(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if provider.type != "database" or config.get("anonymization"):
        return []
    return [
        _violation(
            "DATA_002",
            "medium",
            ["GDPR", "CCPA"],
            message="Data anonymization not implemented",
            location="analytics and reporting",
            recommendation=(
                "Implement data anonymization techniques for analytics and non-production environments"
            ),
            remediation=RemediationGuidance(
                config={
                    "anonymization": {
                        "techniques": ["pseudonymization", "generalization", "suppression"],
                        "preserveAnalytics": True,
                    }
                },
                steps=[
                    "Implement pseudonymization for identifiable data",
                    "Use generalization for demographic data",
                    "Apply suppression for highly sensitive fields",
                    "Maintain referential integrity in anonymized datasets",
                ],
            ),
        )
    ]


def check_network_access_control(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if lookup(config, "network.accessControl"):
        return []
    return [
        _violation(
            "NET_001",
            "high",
            ["SOC2", "PCI"],
            message="Network access controls not configured",
            location="network configuration",
            recommendation="Implement IP allowlisting, VPN requirements, and network segmentation",
            cwe_id="CWE-284",
            remediation=RemediationGuidance(
                config={
                    "network": {
                        "accessControl": {
                            "ipAllowlist": ["10.0.0.0/8", "192.168.0.0/16"],
                            "vpnRequired": True,
                            "networkSegmentation": True,
                        }
                    }
                },
                steps=[
                    "Configure IP allowlisting for administrative access",
                    "Require VPN for remote connections",
                    "Implement network segmentation",
                    "Configure firewall rules for service isolation",
                ],
            ),
        )
    ]


# Heuristic: matches quoted values following secret-looking keys anywhere in the
# serialized config. Can flag unrelated values and misses secrets under other keys;
# ``sensitive_fields`` in the provider config gives an exact alternative.
SECRET_PATTERNS = [
    re.compile(r"password.*[:=]\s*[\"'][^\"']+[\"']", re.IGNORECASE),
    re.compile(r"api.*key.*[:=]\s*[\"'][^\"']+[\"']", re.IGNORECASE),
    re.compile(r"secret.*[:=]\s*[\"'][^\"']+[\"']", re.IGNORECASE),
]

SECRET_REFERENCE_PREFIXES = ("env:", "vault:", "secret://", "${")


def _literal_sensitive_fields(config: dict[str, Any]) -> list[str]:
    literal = []
    for path in config.get("sensitive_fields") or []:
        value = lookup(config, path)
        if isinstance(value, str) and value and not value.startswith(SECRET_REFERENCE_PREFIXES):
            literal.append(path)
    return literal


def check_hardcoded_secrets(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if "sensitive_fields" in config:
        flagged = _literal_sensitive_fields(config)
        location = ", ".join(flagged)
    else:
        serialized = json.dumps(config, default=str)
        flagged = [p.pattern for p in SECRET_PATTERNS if p.search(serialized)]
        location = "provider configuration"
    if not flagged:
        return []
    return [
        _violation(
            "CFG_001",
            "high",
            ["SOC2", "PCI"],
            message="Hardcoded secrets detected in configuration",
            location=location,
            recommendation="Use environment variables or secure secret management for sensitive configuration",
            cwe_id="CWE-798",
            remediation=RemediationGuidance(
                code='password = os.environ["DB_PASSWORD"]',
                steps=[
                    "Move all secrets to environment variables",
                    "Implement secure secret management service",
                    "Rotate secrets regularly",
                    "Remove hardcoded credentials from configuration files",
                ],
            ),
        )
    ]


DEFAULT_CREDENTIALS = [
    ("admin", "admin"),
    ("admin", "password"),
    ("root", "root"),
    ("admin", "123456"),
    ("user", "user"),
    ("test", "test"),
    ("guest", "guest"),
]

_USER_KEYS = ("username", "user", "login")
_PASSWORD_KEYS = ("password", "pass", "passwd")


def _credential_pairs(node: Any) -> Iterable[tuple[str, str]]:
    if isinstance(node, dict):
        user = next((node[k] for k in _USER_KEYS if isinstance(node.get(k), str)), None)
        password = next((node[k] for k in _PASSWORD_KEYS if isinstance(node.get(k), str)), None)
        if user is not None and password is not None:
            yield user.lower(), password.lower()
        for value in node.values():
            yield from _credential_pairs(value)
    elif isinstance(node, list):
        for value in node:
            yield from _credential_pairs(value)


def check_default_credentials(provider: Provider, config: dict[str, Any]) -> list[Violation]:
    if not any(pair in DEFAULT_CREDENTIALS for pair in _credential_pairs(config)):
        return []
    return [
        _violation(
            "CFG_002",
            "critical",
            ["SOC2", "PCI"],
            message="Default credentials detected",
            location="authentication configuration",
            recommendation="Change all default credentials to strong, unique values",
            cwe_id="CWE-521",
            remediation=RemediationGuidance(
                steps=[
                    "Generate strong, unique credentials for all accounts",
                    "Implement credential rotation policy",
                    "Remove or disable default accounts",
                    "Document credential management procedures",
                ],
            ),
        )
    ]


def default_rules() -> list[SecurityRule]:
    """Return fresh instances of the built-in rule set."""
    return [
        SecurityRule(
            id="AUTH_001",
            name="Strong Password Policy",
            description="Enforce strong password requirements",
            severity="high",
            category="authentication",
            compliance=["GDPR", "SOC2", "PCI"],
            check=check_password_policy,
        ),
        SecurityRule(
            id="AUTH_002",
            name="Multi-Factor Authentication",
            description="Require MFA for administrative access",
            severity="critical",
            category="authentication",
            compliance=["SOC2", "PCI", "HIPAA"],
            check=check_mfa,
        ),
        SecurityRule(
            id="ENC_001",
            name="Data Encryption at Rest",
            description="Ensure sensitive data is encrypted when stored",
            severity="critical",
            category="encryption",
            compliance=["GDPR", "CCPA", "SOC2", "PCI", "HIPAA"],
            check=check_encryption_at_rest,
        ),
        SecurityRule(
            id="ENC_002",
            name="Data Encryption in Transit",
            description="Ensure all data transmission uses TLS 1.2 or higher",
            severity="critical",
            category="encryption",
            compliance=["GDPR", "SOC2", "PCI", "HIPAA"],
            check=check_encryption_in_transit,
        ),
        SecurityRule(
            id="VAL_001",
            name="SQL Injection Prevention",
            description="Prevent SQL injection vulnerabilities",
            severity="critical",
            category="input_validation",
            compliance=["SOC2", "PCI"],
            check=check_parameterized_queries,
        ),
        SecurityRule(
            id="VAL_002",
            name="Cross-Site Scripting Prevention",
            description="Prevent XSS vulnerabilities in data handling",
            severity="high",
            category="input_validation",
            compliance=["SOC2"],
            check=check_output_encoding,
        ),
        SecurityRule(
            id="DATA_001",
            name="Personal Data Identification",
            description="Identify and protect personal data",
            severity="high",
            category="data_protection",
            compliance=["GDPR", "CCPA"],
            check=check_personal_data_classification,
        ),
        SecurityRule(
            id="DATA_002",
            name="Data Anonymization",
            description="Implement data anonymization for analytics",
            severity="medium",
            category="data_protection",
            compliance=["GDPR", "CCPA"],
            check=check_anonymization,
        ),
        SecurityRule(
            id="NET_001",
            name="Network Access Control",
            description="Implement proper network access controls",
            severity="high",
            category="network",
            compliance=["SOC2", "PCI"],
            check=check_network_access_control,
        ),
        SecurityRule(
            id="CFG_001",
            name="Secure Configuration Management",
            description="Detect secrets stored in provider configuration",
            severity="high",
            category="configuration",
            compliance=["SOC2", "PCI"],
            check=check_hardcoded_secrets,
        ),
        SecurityRule(
            id="CFG_002",
            name="Default Credentials",
            description="Ensure default credentials are changed",
            severity="critical",
            category="configuration",
            compliance=["SOC2", "PCI"],
            check=check_default_credentials,
        ),
    ]
