from familyos.config.settings import settings

__all__ = ["settings"]
