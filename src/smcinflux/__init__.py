import logging

# Configure root logger; stdout is reserved for metric lines
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logging.getLogger('smcinflux').setLevel(logging.WARNING)
