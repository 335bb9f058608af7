"""Price extraction agents"""
