"""Redshift Data API access.

Statements are submitted through the Data API rather than a JDBC/ODBC
connection, so every call is asynchronous on the provider side:

  - client      : non-blocking facade returning futures
  - dispatcher  : daemon worker pool the facade runs blocking calls on
  - poller      : waits for a statement to reach a terminal status
  - requests    : statement -> Data API request parameters
  - responses   : Data API responses -> typed records / row streams
"""
