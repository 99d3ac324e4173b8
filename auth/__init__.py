"""
Auth package: Supabase client construction shared by the repository and storage.
"""
