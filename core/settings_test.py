from core.settings import *  # noqa: F401,F403

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

MARKETPLACE_RPC_URLS = {
    'base-sepolia': 'http://localhost:8545',
    'offline': '',
}
MARKETPLACE_DEFAULT_NETWORK = 'base-sepolia'
