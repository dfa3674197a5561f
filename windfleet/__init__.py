from dotenv import find_dotenv, load_dotenv

# Submodules read their settings from os.environ at import time
load_dotenv(find_dotenv(usecwd=True))

__version__ = "0.1.0"
