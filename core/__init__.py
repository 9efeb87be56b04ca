"""Core tile math, HTTP session and exception types shared by the coverage layers."""
