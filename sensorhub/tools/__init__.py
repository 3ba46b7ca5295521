"""Command-line tools shipped with sensorhub."""
