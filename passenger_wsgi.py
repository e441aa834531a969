import sys
import os

# Passenger starts in the application directory; make sure it is importable
project_home = os.path.dirname(os.path.abspath(__file__))
if project_home not in sys.path:
    sys.path.insert(0, project_home)

# Passenger serves the module-level 'application'
from main import create_app

application = create_app('production')
