import sys

from image_processor.main import run

sys.exit(run())
