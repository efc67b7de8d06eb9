"""
Configuration loading and management for LDAP Reconcile.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults, and turns the LDAP section into typed settings.
"""

import os
import yaml
import logging
from typing import Dict, Any, List, Optional

from ldap_reconcile.errors import ConfigurationError
from ldap_reconcile.models import (
    AttributeMap,
    LDAPConfig,
    RoleMappingRule,
    ServerConfig,
    VALID_ROLES,
)

logger = logging.getLogger(__name__)

ATTRIBUTE_KEYS = ('name', 'surname', 'username', 'member_of', 'email')


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'store.auth.password': 'STORE_PASSWORD',
        'store.auth.token': 'STORE_TOKEN',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for sensitive fields."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

        # Bind passwords: LDAP_BIND_PASSWORD_<n> for one server, LDAP_BIND_PASSWORD for the rest
        servers = (self.config.get('ldap') or {}).get('servers') or []
        shared_password = os.getenv('LDAP_BIND_PASSWORD')
        for i, server in enumerate(servers):
            if not isinstance(server, dict):
                continue
            env_value = os.getenv(f"LDAP_BIND_PASSWORD_{i}")
            if env_value:
                server['bind_password'] = env_value
                logger.debug(f"Applied environment override for ldap.servers[{i}].bind_password")
            elif shared_password and not server.get('bind_password'):
                server['bind_password'] = shared_password
                logger.debug(f"Applied shared bind password override for ldap.servers[{i}]")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        ldap_config = self.config.get('ldap') or {}
        if not isinstance(ldap_config, dict):
            raise ConfigurationError("Configuration validation failed:\n  - ldap section must be a mapping")

        # A disabled integration needs no server definitions
        if not ldap_config.get('enabled', False):
            return

        servers = ldap_config.get('servers') or []
        if not servers:
            errors.append("At least one LDAP server must be configured")

        for i, server in enumerate(servers):
            server_prefix = f"ldap.servers[{i}]"
            if not isinstance(server, dict):
                errors.append(f"{server_prefix} must be a mapping")
                continue

            for field in ['host', 'search_filter', 'search_base_dns']:
                if not server.get(field):
                    errors.append(f"Missing required field {server_prefix}.{field}")

            for field in ['search_base_dns', 'group_search_base_dns']:
                base_dns = server.get(field)
                if not base_dns:
                    continue
                # A single base DN may be written as a plain string
                if isinstance(base_dns, str):
                    server[field] = [base_dns]
                elif not isinstance(base_dns, list) or not all(isinstance(dn, str) and dn for dn in base_dns):
                    errors.append(f"{server_prefix}.{field} must be a list of DNs")

            if 'port' in server:
                try:
                    int(server['port'])
                except (TypeError, ValueError):
                    errors.append(f"Invalid port for {server_prefix}: {server['port']}")

            for j, mapping in enumerate(server.get('group_mappings') or []):
                mapping_prefix = f"{server_prefix}.group_mappings[{j}]"
                if not isinstance(mapping, dict):
                    errors.append(f"{mapping_prefix} must be a mapping")
                    continue
                if not mapping.get('group_dn'):
                    errors.append(f"Missing group_dn for {mapping_prefix}")
                try:
                    int(mapping.get('org_id', 1))
                except (TypeError, ValueError):
                    errors.append(f"Invalid org_id for {mapping_prefix}: {mapping.get('org_id')}")
                role = mapping.get('org_role')
                if role not in VALID_ROLES:
                    errors.append(f"Invalid org_role for {mapping_prefix}: {role!r} "
                                  f"(expected one of {', '.join(VALID_ROLES)})")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        ldap_config = self.config.get('ldap') or {}
        self.config['ldap'] = ldap_config
        ldap_config.setdefault('enabled', False)
        ldap_config.setdefault('allow_sign_up', True)
        ldap_config['servers'] = ldap_config.get('servers') or []

        attribute_defaults = {
            'name': 'givenName',
            'surname': 'sn',
            'username': 'cn',
            'member_of': 'memberOf',
            'email': 'email'
        }
        for server in ldap_config['servers']:
            if not isinstance(server, dict):
                continue
            server.setdefault('use_ssl', False)
            server.setdefault('port', 636 if server['use_ssl'] else 389)
            server.setdefault('start_tls', False)
            server.setdefault('ssl_skip_verify', False)
            server.setdefault('timeout', 10)
            server.setdefault('bind_dn', '')
            server.setdefault('bind_password', '')
            server.setdefault('group_mappings', [])
            attributes = server.setdefault('attributes', {})
            for key, value in attribute_defaults.items():
                attributes.setdefault(key, value)

        security_config = self.config.setdefault('security', {})
        security_config.setdefault('admin_user', 'admin')

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        # Error handling defaults
        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5
        }
        error_config = self.config.setdefault('error_handling', {})
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)

        store_config = self.config.setdefault('store', {})
        store_config.setdefault('verify_ssl', True)
        store_config.setdefault('timeout', 30)


def build_ldap_config(config: Dict[str, Any]) -> LDAPConfig:
    """
    Build typed LDAP settings from a loaded configuration dictionary.

    Args:
        config: Configuration as returned by ConfigLoader.load()

    Returns:
        LDAPConfig with one ServerConfig per configured server
    """
    ldap_config = config.get('ldap', {})
    servers = []
    # Servers of a disabled integration are not validated
    enabled_servers = ldap_config.get('servers', []) if ldap_config.get('enabled') else []
    for server in enabled_servers:
        attributes = AttributeMap(**{
            key: value for key, value in server.get('attributes', {}).items()
            if key in ATTRIBUTE_KEYS
        })
        rules = [
            RoleMappingRule(
                group_dn=mapping['group_dn'],
                org_id=int(mapping.get('org_id', 1)),
                org_role=mapping['org_role'],
                is_admin=mapping.get('is_admin')
            )
            for mapping in server.get('group_mappings', [])
        ]
        servers.append(ServerConfig(
            host=server['host'],
            port=int(server['port']),
            use_ssl=bool(server.get('use_ssl')),
            start_tls=bool(server.get('start_tls')),
            ssl_skip_verify=bool(server.get('ssl_skip_verify')),
            root_ca_cert=server.get('root_ca_cert'),
            client_cert=server.get('client_cert'),
            client_key=server.get('client_key'),
            bind_dn=server.get('bind_dn', ''),
            bind_password=server.get('bind_password', ''),
            timeout=int(server.get('timeout', 10)),
            search_filter=server['search_filter'],
            search_base_dns=list(server['search_base_dns']),
            group_search_filter=server.get('group_search_filter', ''),
            group_search_base_dns=list(server.get('group_search_base_dns') or []),
            group_search_filter_user_attribute=server.get('group_search_filter_user_attribute', ''),
            attributes=attributes,
            groups=rules
        ))

    return LDAPConfig(
        enabled=bool(ldap_config.get('enabled', False)),
        allow_sign_up=bool(ldap_config.get('allow_sign_up', True)),
        admin_user=config.get('security', {}).get('admin_user', 'admin'),
        servers=servers
    )


class LDAPConfigProvider:
    """
    Lazily loads and caches the LDAP configuration.

    A reload replaces the cached configuration only when the new file loads
    and validates successfully.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.raw: Optional[Dict[str, Any]] = None
        self._ldap_config: Optional[LDAPConfig] = None

    def get(self) -> LDAPConfig:
        """Return the cached LDAP configuration, loading it on first use."""
        if self._ldap_config is None:
            self.reload()
        return self._ldap_config

    def reload(self) -> LDAPConfig:
        """
        Re-read the configuration file.

        Raises:
            ConfigurationError: If the file cannot be loaded; the previous
                configuration stays in effect
        """
        raw = ConfigLoader(self.config_path).load()
        ldap_config = build_ldap_config(raw)
        self.raw = raw
        self._ldap_config = ldap_config
        logger.info(f"LDAP configuration loaded: enabled={ldap_config.enabled}, "
                    f"servers={len(ldap_config.servers)}")
        return ldap_config


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
