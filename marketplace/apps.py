from django.apps import AppConfig


class MarketplaceConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'marketplace'
    verbose_name = 'API Marketplace'

    store = None

    def ready(self):
        from marketplace.store import MarketplaceStore

        self.store = MarketplaceStore()
