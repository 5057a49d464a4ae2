"""Протокол и конфигурация dualrpc."""
