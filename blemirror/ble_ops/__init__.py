"""Value helpers shared by the mirror layer and the command line."""
