"""SFTP request handling and status errors over a server's sandboxed filesystem."""