"""Default directory data for a fresh install.
(Consumed by scripts/seed_backoffice.py; edit prices here or later through /categories.)
"""

# Category name -> price paid per resolved ticket
CATEGORIES = {
    'Installation': 1500,
    'Maintenance': 800,
    'Support': 500,
    'Repair': 1000,
}

# Technician name -> SMS number (None: assignment notices are skipped)
TECHNICIANS = {
    'John Smith': None,
    'Sarah Jones': None,
}
