"""DJ Connect backend - song requests from listeners to DJs"""
