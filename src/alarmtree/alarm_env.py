from pathlib import Path
import os
import tomllib
from pydantic import BaseModel, Field, ValidationError
from typing import Optional
from jinja2 import Template


# ─── Config Schema ─────────────────────────────────────────────────
class UIConfig(BaseModel):
    ampm: bool = False


class DefaultsConfig(BaseModel):
    volume: int = Field(60, ge=0, le=100)
    vibrate: bool = True
    ringtone: Optional[str] = "default"
    offset_days: int = Field(1, ge=0)
    offset_hours: int = Field(0, ge=0, le=23)
    offset_mins: int = Field(0, ge=0, le=59)


class StoreConfig(BaseModel):
    filename: str = "alarms.txt"
    root_name: str = Field("root", pattern=r"^[^\t/\r\n]+$")
    retries: int = Field(3, ge=1)
    retry_delay: float = Field(0.25, ge=0.0)


class AlarmTreeConfig(BaseModel):
    title: str = "AlarmTree Configuration"
    ui: UIConfig = UIConfig()
    defaults: DefaultsConfig = DefaultsConfig()
    store: StoreConfig = StoreConfig()


# ─── Commented Template ────────────────────────────────────
CONFIG_TEMPLATE = """\
title = "{{ title }}"

[ui]
# ampm: bool = true | false
# show ring times as 1:30pm rather than 13:30
ampm = {{ ui.ampm | lower }}

[defaults]
# values given to newly created alarms

# volume: int in 0 ... 100
volume = {{ defaults.volume }}

# vibrate: bool = true | false
vibrate = {{ defaults.vibrate | lower }}

# ringtone: an opaque reference handed to whatever plays the sound.
# Leave empty for a silent alarm.
ringtone = "{{ defaults.ringtone or '' }}"

# the offset used by "once, relative" and "offset" alarms
offset_days = {{ defaults.offset_days }}
offset_hours = {{ defaults.offset_hours }}
offset_mins = {{ defaults.offset_mins }}

[store]
# filename: the store file, relative to the alarmtree home directory
filename = "{{ store.filename }}"

# root_name: the name of the top level folder. Paths such as
# "root/work/" begin with this name.
root_name = "{{ store.root_name }}"

# Saving is retried this many times, waiting retry_delay seconds
# between attempts, before the failure is logged and given up on.
retries = {{ store.retries }}
retry_delay = {{ store.retry_delay }}

"""

# ─── Save Config with Comments ───────────────────────────────


def render_config(config: AlarmTreeConfig) -> str:
    template = Template(CONFIG_TEMPLATE)
    return template.render(**config.model_dump()).strip() + "\n"


def save_config_from_template(config: AlarmTreeConfig, path: Path):
    path.write_text(render_config(config), encoding="utf-8")
    print(f"✅ Config with comments written to: {path}")


# ─── Main Environment Class ───────────────────────────────


class AlarmEnvironment:
    def __init__(self):
        self._home = self._resolve_home()
        self._config: Optional[AlarmTreeConfig] = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def config_path(self) -> Path:
        return self.home / "config.toml"

    @property
    def store_path(self) -> Path:
        return self.home / self.config.store.filename

    def ensure(self, init_config: bool = True):
        self.home.mkdir(parents=True, exist_ok=True)

        if init_config and not self.config_path.exists():
            save_config_from_template(AlarmTreeConfig(), self.config_path)

    def load_config(self) -> AlarmTreeConfig:
        # Step 1: Create the file if it doesn't exist
        if not self.config_path.exists():
            config = AlarmTreeConfig()
            self.home.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(render_config(config), encoding="utf-8")
            print(f"✅ Created new config file at {self.config_path}")
            self._config = config
            return config

        # Step 2: Try to load and validate the config
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
            if data.get("defaults", {}).get("ringtone") == "":
                data["defaults"]["ringtone"] = None
            config = AlarmTreeConfig.model_validate(data)
        except (ValidationError, tomllib.TOMLDecodeError) as e:
            print(f"⚠️ Config error in {self.config_path}: {e}\nUsing defaults.")
            config = AlarmTreeConfig()

        # Step 3: Always regenerate the canonical version
        rendered = render_config(config)
        current_text = self.config_path.read_text(encoding="utf-8")

        if rendered != current_text:
            self.config_path.write_text(rendered, encoding="utf-8")
            print(f"✅ Updated {self.config_path} with any missing defaults.")

        self._config = config
        return config

    @property
    def config(self) -> AlarmTreeConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def _resolve_home(self) -> Path:
        cwd = Path.cwd()
        if (cwd / "config.toml").exists() and (cwd / "alarms.txt").exists():
            return cwd

        env_home = os.getenv("ALARMTREE_HOME")
        if env_home:
            return Path(env_home).expanduser()

        xdg_home = os.getenv("XDG_CONFIG_HOME")
        if xdg_home:
            return Path(xdg_home).expanduser() / "alarmtree"
        else:
            return Path.home() / ".config" / "alarmtree"
