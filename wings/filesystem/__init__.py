"""Safe access to a server's data directory, with disk quota tracking, file details and archives."""