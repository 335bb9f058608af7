"""HTTP trigger and product endpoints"""
