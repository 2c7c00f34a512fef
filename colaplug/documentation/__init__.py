"""Static documentation site for published plugins."""

from colaplug.documentation.assembler import DocumentationAssembler, PublishedVersion
