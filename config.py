import os
import yaml
import keyring

from settings_schema import ServerSettings, validate_settings


class YamlConfig:
    """Server settings stored as YAML, secrets optionally kept in the keyring."""

    SECRET_KEYS = ("email_token",)
    KEYRING_SERVICE = "fitness-backend"

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.use_keyring = os.environ.get("ENCRYPT_SETTINGS") == "1"

    def _reveal(self, data: dict) -> dict:
        for key in self.SECRET_KEYS:
            if key not in data:
                continue
            secret = keyring.get_password(self.KEYRING_SERVICE, key)
            if secret is None:
                # placeholder without a stored secret
                del data[key]
            else:
                data[key] = secret
        return data

    def _conceal(self, data: dict) -> dict:
        for key in self.SECRET_KEYS:
            if key in data:
                keyring.set_password(self.KEYRING_SERVICE, key, str(data[key]))
                data[key] = True
        return data

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return self._reveal(data) if self.use_keyring else data

    def save(self, data: dict) -> None:
        known = {k: v for k, v in data.items() if k in ServerSettings.model_fields}
        if self.use_keyring:
            known = self._conceal(known)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(known, f, sort_keys=True)


class ServerConfig:
    """Server settings merged from defaults, YAML and environment."""

    ENV_KEYS = {
        "DB_PATH": "db_path",
        "EMAIL_SERVER": "email_server",
        "EMAIL_TOKEN": "email_token",
        "LOG_LEVEL": "log_level",
    }

    @classmethod
    def load(cls, yaml_path: str = "settings.yaml", **overrides) -> ServerSettings:
        data = YamlConfig(yaml_path).load()
        for env_key, key in cls.ENV_KEYS.items():
            value = os.environ.get(env_key)
            if value:
                data[key] = value
        data.update({k: v for k, v in overrides.items() if v is not None})
        return validate_settings(data)
