"""Django applications of the roomstay project."""
