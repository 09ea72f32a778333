"""
Markup to DOCX Compiler
=======================
Converts semi-structured markup (headings, emphasis, code fences, pipe
tables, $/$$ math, block quotes, images) into a styled document model and a
.docx package.

Architecture:
    - Inline Tokenizer: Splits one line into styled text runs
    - Table Normalizer: Turns pipe-delimited lines into a rectangular grid
    - Image Resolver: Fetches/decodes image references and sizes them
    - Block Scanner: State machine that walks the input line by line
    - Document Assembler: Applies the style configuration to the blocks
    - Serializer: Writes the document model as an OOXML package

Version: 1.0.0
"""

__version__ = "1.0.0"
