"""Progress presentation: step labels, banner rendering and the title annotator."""
