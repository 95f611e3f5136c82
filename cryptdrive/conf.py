import os
import typing
import logging
from argparse import ArgumentParser
from contextlib import contextmanager
from appdirs import user_data_dir
import yaml

from cryptdrive.error import ConfigParseError, ConfigWriteError, ConfigReadError, InvalidSuffixError
from cryptdrive.crypto.crypt import obscure_setting, reveal_setting
from cryptdrive.crypto.names import NAME_ENCRYPTION_MODES, NAME_ENCRYPTION_OFF, is_valid_suffix

log = logging.getLogger(__name__)


NOT_SET = type('NOT_SET', (object,), {})  # pylint: disable=invalid-name
T = typing.TypeVar('T')

ENV_PREFIX = 'CRYPTDRIVE_'
CONFIG_EXTENSIONS = ('.yml', '.yaml')


class Setting(typing.Generic[T]):
    """
    Descriptor for one configuration value. Reads walk the config's layers in
    search order, writes go to every layer in modify order.
    """

    def __init__(self, doc: str, default: typing.Optional[T] = None, metavar: typing.Optional[str] = None):
        self.doc = doc
        self.default = default
        self.metavar = metavar

    def __set_name__(self, owner, name):
        self.name = name  # pylint: disable=attribute-defined-outside-init

    @property
    def cli_name(self):
        return f"--{self.name.replace('_', '-')}"

    @property
    def env_name(self):
        return f"{ENV_PREFIX}{self.name.upper()}"

    def __get__(self, obj: typing.Optional['BaseConfig'], owner) -> T:
        if obj is None:
            return self
        for layer in obj.search_order:
            if self.name in layer:
                return layer[self.name]
        return self.default

    def __set__(self, obj: 'BaseConfig', val: typing.Union[T, NOT_SET]):
        if val == NOT_SET:
            for layer in obj.modify_order:
                layer.pop(self.name, None)
            return
        self.validate(val)
        for layer in obj.modify_order:
            layer[self.name] = val

    def validate(self, value):
        raise NotImplementedError()

    def deserialize(self, value):  # pylint: disable=no-self-use
        return value

    def contribute_to_argparse(self, parser: ArgumentParser):
        parser.add_argument(self.cli_name, help=self.doc, metavar=self.metavar, default=NOT_SET)


class String(Setting[str]):
    def validate(self, value):
        assert isinstance(value, str), \
            f"Setting '{self.name}' must be a string."


class Toggle(Setting[bool]):
    def validate(self, value):
        assert isinstance(value, bool), \
            f"Setting '{self.name}' must be a true/false value."

    def deserialize(self, value):
        if isinstance(value, str):
            return value.strip().lower() in ('1', 'true', 'yes', 'on')
        return bool(value)

    def contribute_to_argparse(self, parser: ArgumentParser):
        parser.add_argument(self.cli_name, help=self.doc, action="store_true", default=NOT_SET)
        parser.add_argument(
            f"--no-{self.name.replace('_', '-')}", help=f"Opposite of {self.cli_name}",
            dest=self.name, action="store_false", default=NOT_SET
        )


class Path(String):
    def __init__(self, doc: str, *args, default: str = '', **kwargs):
        super().__init__(doc, default, *args, **kwargs)

    def __get__(self, obj, owner) -> str:
        value = super().__get__(obj, owner)
        if isinstance(value, str):
            return os.path.expanduser(os.path.expandvars(value))
        return value


class StringChoice(String):
    def __init__(self, doc: str, valid_values: typing.List[str], default: str, *args, **kwargs):
        super().__init__(doc, default, *args, **kwargs)
        if default not in valid_values:
            raise ValueError(f"Default value must be one of: {', '.join(valid_values)}")
        self.valid_values = valid_values

    def validate(self, value):
        super().validate(value)
        if value not in self.valid_values:
            raise ValueError(f"Setting '{self.name}' value must be one of: {', '.join(self.valid_values)}")


class Suffix(String):
    def validate(self, value):
        super().validate(value)
        if not is_valid_suffix(value):
            raise InvalidSuffixError(value)


def _collect(config_cls: typing.Type['BaseConfig'], lookup: typing.Callable[[Setting], typing.Any]) -> dict:
    values = {}
    for setting in config_cls.get_settings():
        value = lookup(setting)
        if value is not NOT_SET:
            values[setting.name] = setting.deserialize(value)
    return values


class ConfigFile(dict):
    """
    Settings persisted as YAML. Values loaded from the file are deserialized but
    not validated, the overlay validates them when it starts.
    """

    def __init__(self, config_cls: typing.Type['BaseConfig'], path: str):
        super().__init__()
        self.config_cls = config_cls
        self.path = path
        if self.exists:
            self.load()

    @property
    def exists(self):
        return bool(self.path) and os.path.exists(self.path)

    def load(self):
        try:
            with open(self.path, 'r') as config_file:
                serialized = yaml.safe_load(config_file) or {}
        except OSError:
            raise ConfigReadError(self.path)
        except yaml.YAMLError:
            raise ConfigParseError(self.path)
        if not isinstance(serialized, dict):
            raise ConfigParseError(self.path)
        known = _collect(self.config_cls, lambda setting: serialized.get(setting.name, NOT_SET))
        for key in set(serialized) - set(known):
            log.warning("ignoring unknown setting '%s' in %s", key, self.path)
        self.update(known)

    def save(self):
        try:
            with open(self.path, 'w') as config_file:
                yaml.safe_dump(dict(self), config_file, default_flow_style=False)
            # holds the (obscured) credentials
            os.chmod(self.path, 0o600)
        except OSError:
            raise ConfigWriteError(self.path)


TBC = typing.TypeVar('TBC', bound='BaseConfig')


class BaseConfig:

    config = Path("Path to configuration file.", metavar='FILE')

    def __init__(self, **kwargs):
        self.runtime = {}      # set internally or by various API calls
        self.arguments = {}    # from command line arguments
        self.environment = {}  # from environment variables
        self.persisted = {}    # from config file
        self._updating_config = False
        for key, value in kwargs.items():
            setattr(self, key, value)

    @contextmanager
    def update_config(self):
        self._updating_config = True
        try:
            yield self
        finally:
            self._updating_config = False
        if isinstance(self.persisted, ConfigFile):
            self.persisted.save()

    @property
    def modify_order(self):
        if self._updating_config:
            return [self.runtime, self.persisted]
        return [self.runtime]

    @property
    def search_order(self):
        return [self.runtime, self.arguments, self.environment, self.persisted]

    @classmethod
    def get_settings(cls) -> typing.Iterator[Setting]:
        for attr in dir(cls):
            setting = getattr(cls, attr)
            if isinstance(setting, Setting):
                yield setting

    @classmethod
    def create_from_arguments(cls, args) -> TBC:
        conf = cls()
        conf.set_arguments(args)
        conf.set_environment()
        conf.set_persisted()
        return conf

    @classmethod
    def contribute_to_argparse(cls, parser: ArgumentParser):
        for setting in cls.get_settings():
            setting.contribute_to_argparse(parser)

    def set_arguments(self, args):
        self.arguments = _collect(type(self), lambda setting: getattr(args, setting.name, NOT_SET))

    def set_environment(self, environ=None):
        environ = environ or os.environ
        self.environment = _collect(type(self), lambda setting: environ.get(setting.env_name, NOT_SET))

    def set_persisted(self, config_file_path=None):
        if config_file_path is None:
            config_file_path = self.config
        if not config_file_path:
            return
        ext = os.path.splitext(config_file_path)[1]
        assert ext in CONFIG_EXTENSIONS, \
            f"File extension '{ext}' is not supported, configuration file must be in YAML (.yaml)."
        self.persisted = ConfigFile(type(self), config_file_path)


class Config(BaseConfig):
    data_dir = Path("Directory path for the configuration and log files.", metavar='DIR')

    # overlay
    password = String("Main password, stored obscured once the overlay is initialized.", '')
    salt = String(
        "Second password used as the key derivation salt, optional but recommended. "
        "Stored obscured once the overlay is initialized.", ''
    )
    filename_encryption = StringChoice(
        "How file names are encrypted: off, standard or obfuscate.", NAME_ENCRYPTION_MODES, NAME_ENCRYPTION_OFF
    )
    directory_name_encryption = Toggle(
        "Encrypt directory names too, only used when filename encryption is not off.", False
    )
    encrypted_suffix = Suffix("Suffix appended to encrypted file names.", '.bin', metavar='SUFFIX')
    remote_path = String("Path of the remote storage where the encrypted data is stored.", '', metavar='PATH')

    # command line
    local_storage_dir = Path(
        "Local directory the command line client mounts as the remote storage.", metavar='DIR'
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.set_default_paths()

    def set_default_paths(self):
        cls = type(self)
        cls.data_dir.default = user_data_dir('cryptdrive')
        cls.config.default = os.path.join(self.data_dir, 'cryptdrive.yml')

    @property
    def log_file_path(self):
        return os.path.join(self.data_dir, 'cryptdrive.log')

    @property
    def revealed_password(self) -> str:
        return reveal_setting(self.password)

    @property
    def revealed_salt(self) -> str:
        return reveal_setting(self.salt)

    def obscure_credentials(self) -> bool:
        """Replaces plaintext password and salt by their obscured form, persisting them if changed."""
        password, salt = obscure_setting(self.password), obscure_setting(self.salt)
        if password == self.password and salt == self.salt:
            return False
        with self.update_config():
            self.password = password
            self.salt = salt
        return True
