from questline.config.config_loader import load_role_balance
from questline.config.config_validator import ConfigValidator

__all__ = ["load_role_balance", "ConfigValidator"]
