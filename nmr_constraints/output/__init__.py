from .lsd_input_file import build_input_file_content_list, write_input_files

__all__ = [
    'build_input_file_content_list',
    'write_input_files'
]
