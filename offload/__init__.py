"""offload 실행기 및 운영 CLI"""
