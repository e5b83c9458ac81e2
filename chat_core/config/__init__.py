from chat_core.config.settings import ChatSettings, Settings, settings

__all__ = ["ChatSettings", "Settings", "settings"]
