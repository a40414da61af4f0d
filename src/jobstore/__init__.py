"""jobstore: durable, shareable job store for cron/interval schedulers."""

from jobstore.core.settings import JobStoreSettings, load_settings
from jobstore.scheduling import JobStore

__version__ = "0.1.0"

__all__ = ["JobStore", "JobStoreSettings", "load_settings", "__version__"]
