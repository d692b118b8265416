"""Settings package; pick a module via DJANGO_SETTINGS_MODULE."""
